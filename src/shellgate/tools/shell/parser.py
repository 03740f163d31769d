"""Shell grammar parser backed by bashlex.

Flattens the bashlex AST into the invocations it contains, in source
order. Chains (``&&``, ``||``, ``;``), pipelines, subshells, brace groups,
loops, conditionals, function bodies and command/process substitutions
are all descended into, so a command hidden in ``$(...)`` is classified
like any other.
"""

from typing import Iterator

import bashlex
import bashlex.ast
import bashlex.errors

from shellgate.logging import Loggers
from shellgate.tools.shell.errors import CommandParseError
from shellgate.tools.shell.models import Invocation, SyntaxTree

logger = Loggers.policy()

# Node attributes that hold child nodes
_CHILD_LIST_ATTRS = ("parts", "list", "redirects")
_CHILD_NODE_ATTRS = ("command", "output")


def _children(node: bashlex.ast.node) -> Iterator[bashlex.ast.node]:
    for attr in _CHILD_LIST_ATTRS:
        for child in getattr(node, attr, None) or ():
            if isinstance(child, bashlex.ast.node):
                yield child
    for attr in _CHILD_NODE_ATTRS:
        child = getattr(node, attr, None)
        # fd duplications (2>&1) carry an int here
        if isinstance(child, bashlex.ast.node):
            yield child


class CommandParser:
    """Parses command text into a SyntaxTree of invocations."""

    def parse(self, text: str) -> SyntaxTree:
        """Parse a command line.

        Args:
            text: Command text, already normalized by the sanitizer.

        Returns:
            SyntaxTree with one Invocation per simple command. Blank input
            yields an empty tree.

        Raises:
            CommandParseError: If the text is not valid shell syntax or uses
                a construct the grammar does not support.
        """
        if not text.strip():
            return SyntaxTree(source=text)

        try:
            nodes = bashlex.parse(text)
        except bashlex.errors.ParsingError as e:
            raise CommandParseError(text, e.message) from e
        except NotImplementedError as e:
            raise CommandParseError(text, f"unsupported shell construct ({e})") from e
        except Exception as e:
            # bashlex surfaces some malformed input as internal errors
            raise CommandParseError(text, str(e) or type(e).__name__) from e

        invocations: list[Invocation] = []
        for node in nodes:
            self._collect(text, node, invocations)

        logger.debug("command_parsed", invocations=len(invocations))
        return SyntaxTree(source=text, invocations=tuple(invocations))

    def _collect(
        self,
        source: str,
        node: bashlex.ast.node,
        results: list[Invocation],
    ) -> None:
        if node.kind == "command":
            invocation = self._invocation(source, node)
            if invocation is not None:
                results.append(invocation)
        for child in _children(node):
            self._collect(source, child, results)

    @staticmethod
    def _invocation(source: str, node: bashlex.ast.node) -> Invocation | None:
        """Build an Invocation from the word parts of a command node.

        Assignments and redirects are skipped. A command made only of
        assignments (``FOO=bar``) has no head and yields None.
        """
        words = [part.word for part in node.parts if part.kind == "word"]
        if not words:
            return None
        start, end = node.pos
        return Invocation(
            head=words[0],
            args=tuple(words[1:]),
            text=source[start:end].strip(),
        )
