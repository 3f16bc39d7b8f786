"""HTML escaping shared by wrappers, formats, and page output"""

import html


def escape_html(text: str) -> str:
    """Escape &, <, >, and both quote characters."""
    return html.escape(text, quote=True).replace("&#x27;", "&#039;")


def escape_attr(text: str) -> str:
    """Escape a value for use inside a double-quoted attribute."""
    return (
        text.replace("&", "&amp;")
        .replace('"', "&quot;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )
