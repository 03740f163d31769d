"""Tests for the obfuscation sanitizer."""

from shellgate.tools.shell.models import FindingKind
from shellgate.tools.shell.preprocessor import ObfuscationSanitizer

RLO = chr(0x202E)
ZWSP = chr(0x200B)
CYRILLIC_A = chr(0x0430)
FULLWIDTH_SEMICOLON = chr(0xFF1B)
BELL = chr(0x07)


class TestObfuscationSanitizer:
    """Tests for detection and normalization."""

    def test_plain_command_is_clean(self):
        """Test that ordinary ASCII commands produce no findings."""
        result = ObfuscationSanitizer().sanitize("ls -la | grep foo")

        assert not result.suspicious
        assert result.normalized == "ls -la | grep foo"
        assert result.warnings == []

    def test_bidi_override_detected(self):
        """Test that a right-to-left override is reported as bidi."""
        command = f"echo {RLO}txt.exe"
        result = ObfuscationSanitizer().sanitize(command)

        assert result.has_bidi
        assert result.findings[0].kind is FindingKind.BIDI
        assert result.warnings[0].startswith("DANGER: Found 1 BiDi override character(s)")
        assert "U+202E" in result.warnings[0]
        assert RLO not in result.normalized

    def test_zero_width_removed(self):
        """Test that zero-width characters are stripped."""
        result = ObfuscationSanitizer().sanitize(f"r{ZWSP}m file")

        assert result.suspicious
        assert not result.has_bidi
        assert result.normalized == "rm file"
        assert "zero-width" in result.warnings[0]
        assert "U+200B" in result.warnings[0]

    def test_homoglyphs_mapped_to_ascii(self):
        """Test that look-alike letters and punctuation are replaced."""
        result = ObfuscationSanitizer().sanitize(f"c{CYRILLIC_A}t x{FULLWIDTH_SEMICOLON} ls")

        assert result.normalized == "cat x; ls"
        kinds = [f.kind for f in result.findings]
        assert kinds == [FindingKind.HOMOGLYPH]
        assert f"{CYRILLIC_A}→a" in result.warnings[0]

    def test_control_characters_removed(self):
        """Test that C0 controls are stripped but tab and newline are kept."""
        result = ObfuscationSanitizer().sanitize(f"echo a{BELL}\tb\nc")

        assert result.normalized == "echo a\tb\nc"
        assert result.findings[0].kind is FindingKind.CONTROL
        assert "U+0007" in result.warnings[0]

    def test_findings_ordered_by_kind(self):
        """Test that findings list bidi first, then zero-width, homoglyph, control."""
        text = f"{BELL}{CYRILLIC_A}{ZWSP}{RLO}"
        result = ObfuscationSanitizer().sanitize(text)

        assert [f.kind for f in result.findings] == [
            FindingKind.BIDI,
            FindingKind.ZERO_WIDTH,
            FindingKind.HOMOGLYPH,
            FindingKind.CONTROL,
        ]
        assert result.normalized == "a"

    def test_sanitize_is_pure(self):
        """Test that sanitizing twice gives the same result."""
        sanitizer = ObfuscationSanitizer()
        text = f"echo {CYRILLIC_A}{ZWSP}"

        assert sanitizer.sanitize(text) == sanitizer.sanitize(text)
