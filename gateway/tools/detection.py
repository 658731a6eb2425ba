"""Detection of tool calls written out as plain text."""

import re
from collections.abc import Iterable

from gateway.models.llm import TextDetectedCall
from gateway.tools.base import RECALL_USER_INFO, SEARCH_CONVERSATION, STORE_USER_INFO

TEXT_CALL_PATTERNS: dict[str, re.Pattern[str]] = {
    STORE_USER_INFO: re.compile(r'storeUserInfo\(info="(?P<info>[^"]+)"\)'),
    RECALL_USER_INFO: re.compile(r'recallUserInfo\(query="(?P<query>[^"]+)"\)'),
    SEARCH_CONVERSATION: re.compile(
        r'searchConversation\(query="(?P<query>[^"]+)"(?:,\s*timeframe="(?P<timeframe>recent|middle|beginning|all)")?\)'
    ),
}

END_MARKERS = ("<|python_end|>",)


def detect_text_tool_calls(content: str, enabled: Iterable[str]) -> tuple[list[TextDetectedCall], str]:
    """Find inline tool calls for the enabled tools.

    Args:
        content: Raw model output
        enabled: Names of the tools offered on this turn

    Returns:
        Detected calls ordered by position, and the content with the calls and
        end-of-call markers removed
    """
    calls: list[TextDetectedCall] = []
    for name in enabled:
        pattern = TEXT_CALL_PATTERNS.get(name)
        if pattern is None:
            continue
        for match in pattern.finditer(content):
            args = {key: value for key, value in match.groupdict().items() if value is not None}
            calls.append(TextDetectedCall(name=name, args=args, matched_span=match.span()))

    calls.sort(key=lambda call: call.matched_span[0])
    return calls, strip_tool_syntax(content, calls)


def strip_tool_syntax(content: str, calls: list[TextDetectedCall] | None = None) -> str:
    """Remove detected call spans and end markers from visible content."""
    if calls:
        pieces = []
        cursor = 0
        for call in sorted(calls, key=lambda c: c.matched_span[0]):
            start, end = call.matched_span
            pieces.append(content[cursor:start])
            cursor = max(cursor, end)
        pieces.append(content[cursor:])
        content = "".join(pieces)

    for marker in END_MARKERS:
        content = content.replace(marker, "")
    return content.strip()


def scrub_reply(content: str) -> str:
    """Strip any inline tool syntax left in a final reply."""
    calls, cleaned = detect_text_tool_calls(content, TEXT_CALL_PATTERNS)
    return cleaned if calls or any(marker in content for marker in END_MARKERS) else content
