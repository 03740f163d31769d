"""Policy configuration for the command-execution gate.

A policy maps each tier (allow / ask / pin / deny) to a list of
structured wildcard patterns, decides how writes outside the project
root are treated, and lists trusted commands and workspace directories.
Policies can carry per-agent overrides.

YAML example::

    deny: ["rm *", "sudo *"]
    allow: ["ls *", "git status *"]
    pin: ["git push *"]
    external_directory: ask
    workspace_dirs: ["~/scratch"]
    agents:
      plan:
        deny: ["*"]

The mapping form used by agent permission blocks is also accepted::

    bash:
      "rm *": deny
      "git *": ask
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

import yaml

from shellgate.logging import Loggers
from shellgate.tools.shell.models import PolicyTier

logger = Loggers.config()

# Commands no agent should run unattended
BLOCKED_COMMANDS: tuple[str, ...] = (
    # Privilege escalation
    "sudo",
    "su",
    "doas",
    "pkexec",
    # System control
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    # Destructive filesystem operations
    "mkfs*",
    "fdisk",
    "parted",
    "gdisk",
    "shred",
    "wipe",
)

# Read-only commands that are safe to run without asking
READ_ONLY_COMMANDS: tuple[str, ...] = (
    "ls *",
    "pwd",
    "cat *",
    "head *",
    "tail *",
    "wc *",
    "grep *",
    "rg *",
    "find *",
    "echo *",
    "which *",
    "git status *",
    "git diff *",
    "git log *",
    "git show *",
)

_LIST_KEYS = ("allow", "ask", "pin", "deny")


def _parse_tier(value: Any, where: str) -> PolicyTier:
    try:
        return PolicyTier(str(value).lower())
    except ValueError:
        raise ValueError(
            f"Unknown policy tier '{value}' in {where}; "
            f"expected one of {', '.join(t.value for t in PolicyTier)}"
        ) from None


@dataclass
class ShellPolicy:
    """Tiered wildcard policy for shell commands.

    Attributes:
        allow: Patterns that run without approval.
        ask: Patterns that require an approval.
        pin: Patterns that require an approval confirmed with the PIN.
        deny: Patterns that are never executed.
        external_directory: Tier applied to writes outside the project root
            (allow, ask or deny).
        trusted_commands: Full-command patterns that skip the sandbox wrapper.
        workspace_dirs: Directories outside the project root that are trusted.
        agents: Per-agent overrides, merged over this policy by ``for_agent``.
    """

    allow: list[str] = field(default_factory=list)
    ask: list[str] = field(default_factory=list)
    pin: list[str] = field(default_factory=list)
    deny: list[str] = field(default_factory=list)
    external_directory: PolicyTier = PolicyTier.ASK
    trusted_commands: list[str] = field(default_factory=list)
    workspace_dirs: list[str] = field(default_factory=list)
    agents: dict[str, "ShellPolicy"] = field(default_factory=dict)

    def __post_init__(self):
        if self.external_directory is PolicyTier.PIN:
            raise ValueError("external_directory supports allow, ask or deny")

    def patterns(self, tier: PolicyTier) -> list[str]:
        """Patterns configured for a tier."""
        return getattr(self, tier.value)

    def rules(self) -> Iterator[tuple[str, PolicyTier]]:
        """Yield every (pattern, tier) pair."""
        for tier in PolicyTier:
            for pattern in self.patterns(tier):
                yield pattern, tier

    @property
    def is_empty(self) -> bool:
        return not any(self.patterns(t) for t in PolicyTier)

    def for_agent(self, agent: str | None) -> "ShellPolicy":
        """Resolve the effective policy for an agent."""
        if agent is None or agent not in self.agents:
            return self
        return self.merge_with(self.agents[agent])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShellPolicy":
        """Create a policy from a dictionary.

        Args:
            data: Policy dictionary (tier lists and/or a ``bash`` mapping).

        Returns:
            ShellPolicy instance.

        Raises:
            ValueError: If a tier name is not recognized.
        """
        lists: dict[str, list[str]] = {
            key: [str(p) for p in data.get(key) or []] for key in _LIST_KEYS
        }

        mapping = data.get("bash") or {}
        if isinstance(mapping, str):
            # "bash: deny" is shorthand for every command
            mapping = {"*": mapping}
        for pattern, tier in mapping.items():
            lists[_parse_tier(tier, f"bash['{pattern}']").value].append(str(pattern))

        # Agents inherit external_directory unless they set their own
        inherited = {"external_directory": data.get("external_directory", "ask")}
        agents = {
            str(name): cls.from_dict({**inherited, **(agent_data or {})})
            for name, agent_data in (data.get("agents") or {}).items()
        }

        return cls(
            **lists,
            external_directory=_parse_tier(
                data.get("external_directory", "ask"), "external_directory"
            ),
            trusted_commands=[str(p) for p in data.get("trusted_commands") or []],
            workspace_dirs=[str(p) for p in data.get("workspace_dirs") or []],
            agents=agents,
        )

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ShellPolicy":
        """Load a policy from a YAML file.

        A missing file yields an empty policy (every command asks).
        """
        path = Path(path).expanduser()
        if not path.exists():
            logger.debug("policy_file_missing", path=str(path))
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Policy file {path} must contain a mapping")

        logger.debug("policy_loaded", path=str(path))
        return cls.from_dict(data)

    @classmethod
    def load_default(cls) -> "ShellPolicy":
        """Load the policy from the default location.

        Looks for:
        1. ~/.config/shellgate/shell_policy.yaml
        2. ./shell_policy.yaml (project local)
        """
        user_config = Path.home() / ".config" / "shellgate" / "shell_policy.yaml"
        if user_config.exists():
            return cls.from_yaml(user_config)

        local_config = Path("shell_policy.yaml")
        if local_config.exists():
            return cls.from_yaml(local_config)

        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert the policy to a dictionary (round-trips through from_dict)."""
        data: dict[str, Any] = {key: list(self.patterns(PolicyTier(key))) for key in _LIST_KEYS}
        data["external_directory"] = self.external_directory.value
        data["trusted_commands"] = list(self.trusted_commands)
        data["workspace_dirs"] = list(self.workspace_dirs)
        if self.agents:
            data["agents"] = {name: p.to_dict() for name, p in self.agents.items()}
        return data

    def merge_with(self, other: "ShellPolicy") -> "ShellPolicy":
        """Merge this policy with another (other's scalar settings win).

        Pattern lists are concatenated; precedence between tiers still
        decides the outcome when both policies match an invocation.
        """
        return ShellPolicy(
            allow=self.allow + other.allow,
            ask=self.ask + other.ask,
            pin=self.pin + other.pin,
            deny=self.deny + other.deny,
            external_directory=other.external_directory,
            trusted_commands=self.trusted_commands + other.trusted_commands,
            workspace_dirs=self.workspace_dirs + other.workspace_dirs,
            agents={**self.agents, **other.agents},
        )


def get_strict_policy() -> ShellPolicy:
    """Deny dangerous system commands, allow read-only ones, ask for the rest."""
    return ShellPolicy(
        allow=list(READ_ONLY_COMMANDS),
        deny=[f"{c} *" for c in BLOCKED_COMMANDS],
    )


def get_permissive_policy() -> ShellPolicy:
    """Allow everything except dangerous system commands.

    Writes to /tmp are trusted; other external writes still ask.
    """
    return ShellPolicy(
        allow=["*"],
        deny=[f"{c} *" for c in BLOCKED_COMMANDS],
        workspace_dirs=["/tmp"],
    )
