"""Risk classifier and policy matcher.

Resolves a tier for every invocation in a parsed command by matching
``{head, tail}`` against the policy's wildcard patterns, and collects
external-directory findings for filesystem-mutating commands.

Precedence when several patterns match one invocation:
deny > pin > ask > allow. An invocation nothing matches asks.
"""

from shellgate import wildcard
from shellgate.logging import Loggers
from shellgate.tools.shell.config import ShellPolicy
from shellgate.tools.shell.models import (
    ClassificationResult,
    Invocation,
    PolicyDecision,
    PolicyTier,
    SyntaxTree,
)
from shellgate.tools.shell.path_analyzer import PathAnalyzer

logger = Loggers.policy()

DEFAULT_TIER = PolicyTier.ASK


def derive_pattern(invocation: Invocation) -> str:
    """Approval pattern for an invocation.

    ``head arg *`` using the first non-flag argument, or ``head *`` when
    every argument is a flag (or there are none).
    """
    for arg in invocation.args:
        if not arg.startswith("-"):
            return f"{invocation.head} {arg} *"
    return f"{invocation.head} *"


class CommandClassifier:
    """Classifies invocations against a ShellPolicy.

    Read-only: classification never executes anything.
    """

    def __init__(self, policy: ShellPolicy, path_analyzer: PathAnalyzer):
        self.policy = policy
        self.path_analyzer = path_analyzer

    def resolve_tier(self, invocation: Invocation) -> tuple[PolicyTier, str | None]:
        """Match an invocation against every rule and apply precedence.

        Returns:
            The winning tier and the rule that produced it (None when
            nothing matched and the default applies).
        """
        best: tuple[PolicyTier, str] | None = None
        for pattern, tier in self.policy.rules():
            if not wildcard.match_structured(invocation.head, invocation.args, pattern):
                continue
            if best is None or tier.precedence > best[0].precedence:
                best = (tier, pattern)
        if best is None:
            return DEFAULT_TIER, None
        return best

    def classify(self, tree: SyntaxTree) -> ClassificationResult:
        """Classify every invocation in a syntax tree.

        An empty tree classifies as allow with no findings.
        """
        result = ClassificationResult()

        for invocation in tree.invocations:
            for directory in self.path_analyzer.external_directories(invocation):
                result.add_external(directory)

            pattern = derive_pattern(invocation)

            if invocation.head == "cd":
                # cd runs no program; only its target directory matters
                result.decisions.append(
                    PolicyDecision(invocation=invocation, tier=PolicyTier.ALLOW, pattern=pattern)
                )
                continue

            tier, rule = self.resolve_tier(invocation)
            result.decisions.append(
                PolicyDecision(
                    invocation=invocation,
                    tier=tier,
                    pattern=pattern,
                    matched_rule=rule,
                )
            )

        logger.debug(
            "command_classified",
            tiers=[d.tier.value for d in result.decisions],
            external_paths=result.external_paths,
        )
        return result

    def highest_tier(self, result: ClassificationResult) -> PolicyTier:
        """Strongest tier among the decisions (allow for an empty command)."""
        return PolicyTier.strongest(d.tier for d in result.decisions) or PolicyTier.ALLOW
