"""Shared constants for shellgate."""

# Output and timeout limits for shell execution
MAX_OUTPUT_LENGTH = 30_000
DEFAULT_TIMEOUT_MS = 60_000
MAX_TIMEOUT_MS = 10 * 60 * 1000
KILL_GRACE_MS = 200

# Display truncation limits
CONTENT_PREVIEW_LENGTH = 200
AUDIT_PREVIEW_LENGTH = 500


def truncate(text: str, max_length: int = CONTENT_PREVIEW_LENGTH) -> str:
    """Truncate text with ellipsis if it exceeds max_length."""
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def format_size(size_bytes: int) -> str:
    """Format byte count as human-readable string (B, KB, MB)."""
    if size_bytes < 1024:
        return f"{size_bytes}B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f}KB"
    return f"{size_bytes / (1024 * 1024):.1f}MB"
