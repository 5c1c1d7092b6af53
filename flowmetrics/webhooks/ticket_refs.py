import re

import structlog

logger = structlog.get_logger()

DEFAULT_TICKET_PATTERN = r"([A-Z][A-Z0-9]+-\d+)"

_default_regex = re.compile(DEFAULT_TICKET_PATTERN)


def compile_ticket_pattern(override: str | None) -> re.Pattern[str]:
    """Compile a tech stream's ticket regex, falling back to the default when absent or invalid."""
    if not override:
        return _default_regex
    try:
        return re.compile(override)
    except re.error:
        logger.debug("ticket_regex_invalid", pattern=override)
        return _default_regex


def extract_ticket_reference(
    pattern: re.Pattern[str],
    branch: str | None,
    title: str | None,
    body: str | None,
) -> str | None:
    """Return the first ticket key found, scanning branch, then title, then body."""
    for text in (branch, title, body):
        if not text:
            continue
        match = pattern.search(text)
        if match:
            return match.group(1) if match.groups() else match.group(0)
    return None
