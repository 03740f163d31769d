"""Configuration for the shellgate command-execution gate.

Settings Management:
    The module provides both global singleton and context-based settings:

    1. Global singleton (simple cases):
        set_settings(my_settings)
        settings = get_settings()

    2. Context-based (isolated contexts, tests, multi-tenant):
        with SettingsContext(my_settings):
            settings = get_settings()  # Returns my_settings

Settings Loading Priority (highest to lowest):
    1. Constructor arguments
    2. Environment variables (SHELLGATE_* prefix)
    3. Project config (./.shellgate/settings.json)
    4. User config (~/.shellgate/settings.json)
    5. .env file
    6. Default values
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Generator, Literal, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from shellgate.constants import (
    DEFAULT_TIMEOUT_MS,
    KILL_GRACE_MS,
    MAX_OUTPUT_LENGTH,
    MAX_TIMEOUT_MS,
)

__all__ = [
    "GateSettings",
    "SettingsContext",
    "SettingsValidationError",
    "get_settings",
    "set_settings",
    "set_context_settings",
    "get_context_settings",
    "validate_settings",
    "reload_settings",
]

APP_NAME = "shellgate"


def _get_json_config_source(
    settings_cls: Type[BaseSettings],
    json_file: Path,
) -> PydanticBaseSettingsSource | None:
    """Create a JSON config source if the file exists.

    Args:
        settings_cls: The settings class
        json_file: Path to JSON config file

    Returns:
        JsonConfigSettingsSource if file exists, None otherwise
    """
    if not json_file.exists():
        return None
    return JsonConfigSettingsSource(settings_cls, json_file=json_file)


class GateSettings(BaseSettings):
    """Settings for the command-execution gate.

    Settings are loaded from (in order of precedence):
    1. Constructor arguments
    2. Environment variables (SHELLGATE_ prefix)
    3. Project config (./.shellgate/settings.json)
    4. User config (~/.shellgate/settings.json)
    5. .env file
    6. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="SHELLGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field(
        default=APP_NAME,
        title="App Name",
        description="Application name used for config directories",
    )

    # Paths
    project_root: Path = Field(
        default_factory=Path.cwd,
        title="Project Root",
        description="Directory commands run in; mutations outside it need approval",
    )
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / f".{APP_NAME}",
        title="Data Directory",
        description="Directory for the PIN file and audit logs",
    )
    policy_file: Path | None = Field(
        default=None,
        title="Policy File",
        description="YAML policy file (default lookup is used when unset)",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="warning",
        title="Log Level",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        title="Log Format",
    )

    # Execution limits
    default_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, ge=0)
    max_timeout_ms: int = Field(default=MAX_TIMEOUT_MS, ge=0)
    max_output_length: int = Field(default=MAX_OUTPUT_LENGTH, gt=0)
    kill_grace_ms: int = Field(default=KILL_GRACE_MS, ge=0)

    # Operator trust lists
    trusted_commands: list[str] = Field(
        default_factory=list,
        description="Wildcard patterns for commands that skip the sandbox wrapper",
    )
    workspace_dirs: list[Path] = Field(
        default_factory=list,
        description="Directories outside the project root that are trusted",
    )

    # Sandbox resource limits
    sandbox_enabled: bool = False
    sandbox_max_memory_mb: int = 1024
    sandbox_max_cpu_seconds: int = 600
    sandbox_max_processes: int = 256
    sandbox_max_open_files: int = 1024

    # Audit
    audit_enabled: bool = True
    audit_retention_days: int = Field(default=30, ge=1)

    @field_validator("project_root", "data_dir", "policy_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        """Expand ~ in paths."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("workspace_dirs", mode="before")
    @classmethod
    def expand_paths(cls, v: list[str | Path]) -> list[Path]:
        """Expand ~ in each workspace directory."""
        return [Path(p).expanduser() for p in v]

    @property
    def pin_file(self) -> Path:
        """File storing the hashed PIN."""
        return self.data_dir / "pin.json"

    @property
    def audit_dir(self) -> Path:
        """Directory for audit logs."""
        return self.data_dir / "audit"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Layer project and user JSON config between env vars and .env.

        JSON sources are only included if the files exist.
        """
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
        ]

        project_json = _get_json_config_source(
            settings_cls,
            Path.cwd() / f".{APP_NAME}" / "settings.json",
        )
        if project_json:
            sources.append(project_json)

        user_json = _get_json_config_source(
            settings_cls,
            Path.home() / f".{APP_NAME}" / "settings.json",
        )
        if user_json:
            sources.append(user_json)

        sources.append(dotenv_settings)

        return tuple(sources)


# Context variable for settings (takes precedence over global singleton)
_settings_context: ContextVar[GateSettings | None] = ContextVar(
    "settings_context", default=None
)

_settings_instance: GateSettings | None = None


def get_settings() -> GateSettings:
    """Get the current settings instance.

    Settings resolution order:
    1. Context variable (set via SettingsContext or set_context_settings)
    2. Global singleton (set via set_settings)
    3. Fresh GateSettings instance (created on first access)
    """
    context_settings = _settings_context.get()
    if context_settings is not None:
        return context_settings

    global _settings_instance
    if _settings_instance is None:
        _settings_instance = GateSettings()
    return _settings_instance


def set_settings(settings: GateSettings) -> None:
    """Set the global settings instance.

    Args:
        settings: Settings instance to use globally
    """
    global _settings_instance
    _settings_instance = settings


def set_context_settings(settings: GateSettings | None) -> Token:
    """Set settings for the current context.

    Args:
        settings: Settings to use in current context, or None to clear

    Returns:
        Token that can be used to reset the context variable.
    """
    return _settings_context.set(settings)


def get_context_settings() -> GateSettings | None:
    """Get settings from current context (if any)."""
    return _settings_context.get()


@contextmanager
def SettingsContext(settings: GateSettings) -> Generator[GateSettings, None, None]:
    """Context manager for isolated settings.

    Example:
        with SettingsContext(test_settings) as s:
            gate = ShellGate()  # Picks up test_settings

    Args:
        settings: Settings to use within the context

    Yields:
        The settings instance
    """
    token = _settings_context.set(settings)
    try:
        yield settings
    finally:
        _settings_context.reset(token)


def reload_settings() -> GateSettings:
    """Reload settings (clears global singleton and context cache).

    Returns:
        Fresh GateSettings instance
    """
    global _settings_instance
    _settings_instance = None
    _settings_context.set(None)
    return get_settings()


class SettingsValidationError(Exception):
    """Raised when settings validation fails."""

    pass


def validate_settings(settings: GateSettings) -> None:
    """Validate settings for runtime use.

    Performs checks that can only be done at runtime:
    - Project root must exist and be a directory
    - Timeout bounds must be consistent

    Args:
        settings: Settings to validate

    Raises:
        SettingsValidationError: If validation fails
    """
    errors = []

    if not settings.project_root.is_dir():
        errors.append(f"Project root '{settings.project_root}' is not a directory.")

    if settings.default_timeout_ms > settings.max_timeout_ms:
        errors.append(
            f"default_timeout_ms ({settings.default_timeout_ms}) exceeds "
            f"max_timeout_ms ({settings.max_timeout_ms})."
        )

    if settings.policy_file is not None and not settings.policy_file.exists():
        errors.append(f"Policy file '{settings.policy_file}' does not exist.")

    if errors:
        raise SettingsValidationError("\n".join(errors))
