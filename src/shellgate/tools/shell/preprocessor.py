"""Obfuscation sanitizer for shell commands.

Detects characters that make the command shown to the user differ from
the command the shell would execute:
- Bidirectional overrides (always fatal, never normalized away)
- Zero-width and invisible characters
- Homoglyphs that render like ASCII letters or shell punctuation
- C0/C1 control characters other than tab, newline and carriage return
"""

from shellgate.logging import Loggers
from shellgate.tools.shell.models import (
    FindingKind,
    ObfuscationFinding,
    SanitizationResult,
)

logger = Loggers.sanitizer()

ZERO_WIDTH_CHARS = frozenset(
    {
        "\u200b",  # zero width space
        "\u200c",  # zero width non-joiner
        "\u200d",  # zero width joiner
        "\ufeff",  # byte order mark
        "\u2060",  # word joiner
        "\u180e",  # mongolian vowel separator
        "\u200e",  # left-to-right mark
        "\u200f",  # right-to-left mark
    }
)

BIDI_OVERRIDE_CHARS = frozenset(
    {
        "\u202a",  # LRE
        "\u202b",  # RLE
        "\u202c",  # PDF
        "\u202d",  # LRO
        "\u202e",  # RLO
        "\u2066",  # LRI
        "\u2067",  # RLI
        "\u2068",  # FSI
        "\u2069",  # PDI
    }
)

HOMOGLYPH_MAP = {
    "\u0430": "a",  # Cyrillic а
    "\u0435": "e",  # Cyrillic е
    "\u043e": "o",  # Cyrillic о
    "\u0440": "p",  # Cyrillic р
    "\u0441": "c",  # Cyrillic с
    "\u0443": "y",  # Cyrillic у
    "\u0445": "x",  # Cyrillic х
    "\u0456": "i",  # Cyrillic і
    "\u0458": "j",  # Cyrillic ј
    "\u04bb": "h",  # Cyrillic һ
    "\u0501": "d",  # Cyrillic ԁ
    "\u051b": "q",  # Cyrillic ԛ
    "\u0417": "3",  # Cyrillic З
    "\u0391": "A",  # Greek Α
    "\u0392": "B",  # Greek Β
    "\u0395": "E",  # Greek Ε
    "\u0397": "H",  # Greek Η
    "\u0399": "I",  # Greek Ι
    "\u039a": "K",  # Greek Κ
    "\u039c": "M",  # Greek Μ
    "\u039d": "N",  # Greek Ν
    "\u039f": "O",  # Greek Ο
    "\u03a1": "P",  # Greek Ρ
    "\u03a4": "T",  # Greek Τ
    "\u03a5": "Y",  # Greek Υ
    "\u03a7": "X",  # Greek Χ
    "\uff52": "r",  # Fullwidth r
    "\uff4d": "m",  # Fullwidth m
    "\uff0f": "/",  # Fullwidth solidus
    "\uff5c": "|",  # Fullwidth vertical line
    "\uff1b": ";",  # Fullwidth semicolon
    "\uff06": "&",  # Fullwidth ampersand
    "\u2212": "-",  # Minus sign (not hyphen)
    "\u2010": "-",  # Hyphen
    "\u2013": "-",  # En dash
}

_ALLOWED_CONTROLS = frozenset({"\t", "\n", "\r"})


def _is_control(char: str) -> bool:
    code = ord(char)
    if char in _ALLOWED_CONTROLS:
        return False
    return code < 0x20 or code == 0x7F or 0x80 <= code <= 0x9F


def _code_point(char: str) -> str:
    return f"U+{ord(char):04X}"


class ObfuscationSanitizer:
    """Scans command text and produces a normalized, annotated result.

    ``sanitize`` is a pure function of its input and never raises; the
    caller decides what to do with the findings. Bidi findings are tagged
    FindingKind.BIDI so they can be escalated to a hard failure.
    """

    def sanitize(self, text: str) -> SanitizationResult:
        findings: list[ObfuscationFinding] = []

        bidi = self._collect(text, BIDI_OVERRIDE_CHARS.__contains__)
        if bidi:
            findings.append(
                ObfuscationFinding(
                    kind=FindingKind.BIDI,
                    message=(
                        f"DANGER: Found {len(bidi)} BiDi override character(s) "
                        f"[{', '.join(sorted(set(bidi)))}] - text may display "
                        "differently than executed"
                    ),
                    code_points=tuple(bidi),
                )
            )

        zero_width = self._collect(text, ZERO_WIDTH_CHARS.__contains__)
        if zero_width:
            findings.append(
                ObfuscationFinding(
                    kind=FindingKind.ZERO_WIDTH,
                    message=(
                        f"Found {len(zero_width)} zero-width character(s) "
                        f"[{', '.join(sorted(set(zero_width)))}]"
                    ),
                    code_points=tuple(zero_width),
                )
            )

        substitutions = []
        for char in dict.fromkeys(text):
            if char in HOMOGLYPH_MAP:
                substitutions.append(f"{char}→{HOMOGLYPH_MAP[char]}")
        if substitutions:
            findings.append(
                ObfuscationFinding(
                    kind=FindingKind.HOMOGLYPH,
                    message=f"Found homoglyph(s): {', '.join(substitutions)}",
                    code_points=tuple(
                        _code_point(c) for c in dict.fromkeys(text) if c in HOMOGLYPH_MAP
                    ),
                )
            )

        controls = self._collect(text, _is_control)
        if controls:
            findings.append(
                ObfuscationFinding(
                    kind=FindingKind.CONTROL,
                    message=(
                        f"Found control character(s): {', '.join(sorted(set(controls)))}"
                    ),
                    code_points=tuple(controls),
                )
            )

        result = SanitizationResult(
            original=text,
            normalized=self.normalize(text),
            findings=tuple(findings),
        )
        if result.suspicious:
            logger.debug(
                "obfuscation_scan",
                kinds=[f.kind.value for f in findings],
            )
        return result

    def normalize(self, text: str) -> str:
        """Strip invisible and control characters, map homoglyphs to ASCII."""
        out = []
        for char in text:
            if char in ZERO_WIDTH_CHARS or char in BIDI_OVERRIDE_CHARS or _is_control(char):
                continue
            out.append(HOMOGLYPH_MAP.get(char, char))
        return "".join(out)

    @staticmethod
    def _collect(text: str, predicate) -> list[str]:
        return [_code_point(c) for c in text if predicate(c)]
