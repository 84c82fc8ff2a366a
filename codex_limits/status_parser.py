"""Parse the session_status payload returned by the gateway."""

import logging
import re
from typing import Any, Optional

from .models import UsageSnapshot

logger = logging.getLogger(__name__)

# Usage line produced by the upstream session_status tool, e.g.
# "Usage: 5h 42% left 3h 10m · Day 15% left 6h 0m"
USAGE_LINE_RE = re.compile(
    r'Usage:\s*5h\s*(\d+)%\s*left\s*([^·]+)·\s*Day\s*(\d+)%\s*left\s*(.*)$',
    re.MULTILINE,
)


def extract_status_text(status_json: Any) -> str:
    """Return the first non-empty text block from a tool result, or ''."""
    if not isinstance(status_json, dict):
        return ""
    result = status_json.get("result")
    if not isinstance(result, dict):
        return ""
    blocks = result.get("content")
    if not isinstance(blocks, list):
        return ""

    for block in blocks:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str) and text:
                return text
    return ""


def parse_usage_line(status_text: Optional[str]) -> Optional[UsageSnapshot]:
    """
    Parse the usage line out of the status text.

    The format is owned by the upstream tool, so a mismatch is not an error:
    None is returned and callers fall back to the raw text.
    """
    m = USAGE_LINE_RE.search(str(status_text or ""))
    if not m:
        return None
    return UsageSnapshot(
        pct_5h=int(m.group(1)),
        time_5h=m.group(2).strip(),
        pct_day=int(m.group(3)),
        time_day=m.group(4).strip(),
    )


def format_usage(parsed: UsageSnapshot) -> str:
    return (
        "Codex limits:\n"
        f"- 5h remaining: {parsed.pct_5h}% ({parsed.time_5h})\n"
        f"- Day remaining: {parsed.pct_day}% ({parsed.time_day})"
    )


def format_summary(status_json: Any) -> str:
    """Format the human-readable message relayed to the messaging channel."""
    status_text = extract_status_text(status_json)
    parsed = parse_usage_line(status_text)
    if parsed:
        return format_usage(parsed)
    if status_text:
        logger.debug("Status text did not match usage line, relaying raw text")
        return f"Codex limits (raw):\n{status_text}"
    return "Codex limits: (no status text)"
