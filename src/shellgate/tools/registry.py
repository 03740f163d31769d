"""Registry of the agent-facing tools shellgate exposes.

Tools report failures by raising ToolError. Synchronous tools can be
wrapped with ``with_result_wrapper`` so callers always receive a
``{"success", "execution_time_ms", "data" | "error"}`` dictionary.
"""

from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Callable, ParamSpec, TypeVar
import inspect
import time


class ToolCategory(Enum):
    EXECUTION = "execution"
    ANALYSIS = "analysis"
    OTHER = "other"


class ErrorCode:
    """Machine-readable codes carried by ToolError."""

    INVALID_INPUT = "INVALID_INPUT"

    # Raised by the gate before anything runs
    OBFUSCATION_REJECTED = "OBFUSCATION_REJECTED"
    PARSE_ERROR = "PARSE_ERROR"
    POLICY_DENIED = "POLICY_DENIED"
    PERMISSION_REJECTED = "PERMISSION_REJECTED"
    PIN_NOT_CONFIGURED = "PIN_NOT_CONFIGURED"
    CANCELLED = "CANCELLED"

    SPAWN_FAILED = "SPAWN_FAILED"

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ToolError(Exception):
    """A tool failure the calling agent can act on.

    Attributes:
        message: Text shown to the agent (and usually the user).
        error_code: One of the ErrorCode values.
        recoverable: Whether retrying with different input may succeed.
        details: Structured context, e.g. the offending command.
        tool_name: Tool that raised, filled in by the wrapper if unset.
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.INTERNAL_ERROR,
        recoverable: bool = False,
        details: dict[str, Any] | None = None,
        tool_name: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.recoverable = recoverable
        self.details = details or {}
        self.tool_name = tool_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": {
                "message": self.message,
                "code": self.error_code,
                "recoverable": self.recoverable,
                "details": self.details,
                "tool_name": self.tool_name,
            },
        }


@dataclass
class ToolResult:
    """Outcome of one wrapped tool call."""

    success: bool
    data: Any = None
    error: ToolError | None = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "execution_time_ms": round(self.execution_time_ms, 2),
        }
        if self.success:
            result["data"] = self.data
        else:
            result["error"] = self.error.to_dict()["error"] if self.error else None
        return result


@dataclass
class ToolDefinition:
    """A registered tool.

    Attributes:
        name: Name the agent calls the tool by.
        description: One-line description shown to the agent.
        func: The tool function.
        category: What kind of work the tool does.
        timeout_seconds: Upper bound the host should allow for one call.
    """

    name: str
    description: str
    func: Callable[..., Any]
    category: ToolCategory = ToolCategory.OTHER
    timeout_seconds: int = 30

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.func)


class ToolRegistry:
    """Name-indexed collection of tools."""

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        func: Callable[..., Any] | None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        category: ToolCategory = ToolCategory.OTHER,
        timeout_seconds: int = 30,
    ) -> Callable[..., Any]:
        """Register a tool, directly or as a decorator.

        The description defaults to the first line of the docstring.
        """

        def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
            tool_name = name or f.__name__
            self._tools[tool_name] = ToolDefinition(
                name=tool_name,
                description=description or (f.__doc__ or "").split("\n")[0].strip(),
                func=f,
                category=category,
                timeout_seconds=timeout_seconds,
            )
            return f

        if func is not None:
            return decorator(func)
        return decorator

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_function(self, name: str) -> Callable[..., Any] | None:
        definition = self._tools.get(name)
        return definition.func if definition else None

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools


_default_registry = ToolRegistry()


def get_registry() -> ToolRegistry:
    """The registry shellgate's own tools are registered in."""
    return _default_registry


def register_tool(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    category: ToolCategory = ToolCategory.OTHER,
    timeout_seconds: int = 30,
) -> Callable[..., Any]:
    """Register a tool with the default registry."""
    return _default_registry.register(
        func,
        name=name,
        description=description,
        category=category,
        timeout_seconds=timeout_seconds,
    )


P = ParamSpec("P")
T = TypeVar("T")


def with_result_wrapper(func: Callable[P, T]) -> Callable[P, dict[str, Any]]:
    """Turn a synchronous tool's return value or error into a result dict.

    ToolErrors keep their code; any other exception becomes INTERNAL_ERROR.

    Example:
        @with_result_wrapper
        def manual_command(command: str, reason: str) -> dict:
            ...

        # Returns: {"success": True, "data": {...}, "execution_time_ms": 0.4}
    """

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            data = func(*args, **kwargs)
        except ToolError as e:
            e.tool_name = e.tool_name or func.__name__
            result = ToolResult(success=False, error=e)
        except Exception as e:
            error = ToolError(str(e), ErrorCode.INTERNAL_ERROR, tool_name=func.__name__)
            result = ToolResult(success=False, error=error)
        else:
            result = ToolResult(success=True, data=data)
        result.execution_time_ms = (time.perf_counter() - start) * 1000
        return result.to_dict()

    return wrapper
