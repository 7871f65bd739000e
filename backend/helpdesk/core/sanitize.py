import html

import nh3
from markupsafe import escape


def sanitize_input(value: str | None) -> str:
    """Strip every HTML tag; script/style bodies are dropped entirely.

    The result is plain text, so entities nh3 emits for the kept text are decoded again.
    """
    if not value:
        return ""
    cleaned = nh3.clean(
        value,
        tags=set(),
        clean_content_tags={"script", "style"},
        attributes={},
    )
    return html.unescape(cleaned).strip()


def escape_html(value) -> str:
    return str(escape("" if value is None else str(value)))
