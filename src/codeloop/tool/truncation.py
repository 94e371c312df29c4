"""Output truncation: bound all tool output before it reaches the LLM."""

from __future__ import annotations

import os
import re
import tempfile

MAX_LINES = 2000
MAX_BYTES = 50 * 1024  # 50KB
OUTPUT_DIR = "~/.codeloop/tool-output"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


def truncate_output(
    text: str,
    max_lines: int = MAX_LINES,
    max_bytes: int = MAX_BYTES,
    save_dir: str | None = OUTPUT_DIR,
) -> str:
    """Truncate tool output to fit within the context budget.

    The tail is kept (errors tend to be at the end). When ``save_dir`` is set
    the full output is written there and the notice points at the file.
    """
    if not text:
        return text

    lines = text.split("\n")
    byte_count = len(text.encode("utf-8", errors="replace"))

    if len(lines) <= max_lines and byte_count <= max_bytes:
        return text

    full_path = _save_full(text, save_dir) if save_dir else None

    skipped_lines = max(0, len(lines) - max_lines)
    result = "\n".join(lines[-max_lines:])

    result_bytes = result.encode("utf-8", errors="replace")
    skipped_bytes = 0
    if len(result_bytes) > max_bytes:
        # Cut at a safe UTF-8 boundary, keeping the tail
        result = result_bytes[-max_bytes:].decode("utf-8", errors="ignore")
        skipped_bytes = byte_count - max_bytes

    notice_parts = []
    if skipped_lines:
        notice_parts.append(f"{skipped_lines} lines skipped")
    if skipped_bytes:
        notice_parts.append(f"{skipped_bytes} bytes skipped")

    notice = (
        f"[Output truncated: {', '.join(notice_parts)}. "
        f"Total: {len(lines)} lines, {byte_count} bytes]"
    )
    if full_path:
        notice += f"\n[Full output saved to: {full_path}]"

    return f"{notice}\n{result}"


def _save_full(text: str, save_dir: str) -> str:
    directory = os.path.expanduser(save_dir)
    os.makedirs(directory, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="codeloop-", suffix=".txt", dir=directory)
    with os.fdopen(fd, "w") as f:
        f.write(text)
    return path


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)


def sanitize_binary_output(text: str) -> str:
    """Drop control characters, keeping tabs, newlines and carriage returns."""
    return "".join(
        ch
        for ch in text
        if ch in "\t\n\r"
        or (ord(ch) >= 32 and not 0x7F <= ord(ch) < 0xA0 and not 0xFFF9 <= ord(ch) < 0xFFFC)
    )
