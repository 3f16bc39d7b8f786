"""Format wrappers: replace the inner render and format the value directly.

These sit anywhere in a pipeline (`server | json?indent=4`); the wrapped
render function is ignored and the block value is formatted instead.
"""

import csv
import io
import json
import re
from typing import Any, Optional

import yaml

from litpress.core.models import BlockContext, RenderFunction, Wrapper
from litpress.core.utils.html import escape_html


_SCRIPT_RE = re.compile(r'<script\b[^>]*>.*?</script\s*>', re.IGNORECASE | re.DOTALL)
_HANDLER_RE = re.compile(r'\s+on[a-z]+\s*=\s*("[^"]*"|\'[^\']*\'|[^\s>]+)', re.IGNORECASE)
_JS_URL_RE = re.compile(r'(href|src)\s*=\s*(["\'])\s*javascript:[^"\']*\2', re.IGNORECASE)


def _error_pre(class_name: str, message: str) -> str:
    return f'<pre class="{class_name} litpress-error">{escape_html(message)}</pre>'


def truncate_depth(value: Any, max_depth: int, depth: int = 0) -> Any:
    """Replace containers nested deeper than max_depth with a marker string."""
    if isinstance(value, dict):
        if depth >= max_depth:
            return "[Object]"
        return {k: truncate_depth(v, max_depth, depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        if depth >= max_depth:
            return "[Array]"
        return [truncate_depth(v, max_depth, depth + 1) for v in value]
    return value


def json_format(config: Optional[dict] = None) -> Wrapper:
    cfg = config or {}
    indent = cfg.get("indent", 2)
    class_name = cfg.get("className", "litpress-json")
    highlight = cfg.get("highlight", True)
    max_depth = cfg.get("maxDepth")

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            if max_depth is not None:
                value = truncate_depth(value, int(max_depth))
            try:
                text = json.dumps(value, indent=indent)
            except (TypeError, ValueError) as e:
                return _error_pre(class_name, f"JSON serialization error: {e}")
            code_class = ' class="language-json"' if highlight else ""
            return f'<pre class="{class_name}"><code{code_class}>{escape_html(text)}</code></pre>'
        return wrapped
    return wrap


def yaml_format(config: Optional[dict] = None) -> Wrapper:
    cfg = config or {}
    indent = cfg.get("indent", 2)
    class_name = cfg.get("className", "litpress-yaml")
    highlight = cfg.get("highlight", True)
    max_depth = cfg.get("maxDepth")

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            code_class = ' class="language-yaml"' if highlight else ""
            if value is None:
                return f'<pre class="{class_name}"><code{code_class}>null</code></pre>'
            if max_depth is not None:
                value = truncate_depth(value, int(max_depth))
            try:
                text = yaml.safe_dump(value, indent=indent, sort_keys=False, allow_unicode=True)
            except yaml.YAMLError as e:
                return _error_pre(class_name, f"YAML serialization error: {e}")
            return f'<pre class="{class_name}"><code{code_class}>{escape_html(text.rstrip())}</code></pre>'
        return wrapped
    return wrap


def _rows(value: list) -> tuple[list[str], list[list[Any]]]:
    """Headers and rows from a list of dicts (keys of the first) or a list of lists."""
    first = value[0]
    if isinstance(first, dict):
        headers = [str(k) for k in first]
        return headers, [[item.get(h, "") for h in headers] for item in value]
    return [], [list(item) for item in value]


def csv_format(config: Optional[dict] = None) -> Wrapper:
    cfg = config or {}
    delimiter = str(cfg.get("delimiter", ","))
    header = cfg.get("header", True)
    class_name = cfg.get("className", "litpress-csv")
    as_table = cfg.get("asTable", False)

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            if not isinstance(value, (list, tuple)):
                return _error_pre(class_name, "CSV format requires a list of rows")
            if not value:
                return f'<pre class="{class_name}"></pre>'
            if not isinstance(value[0], (dict, list, tuple)):
                return _error_pre(class_name, "CSV rows must be objects or lists")

            headers, rows = _rows(list(value))
            if as_table:
                return _table(class_name, headers if header else [], rows)

            buf = io.StringIO()
            writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n")
            if header and headers:
                writer.writerow(headers)
            writer.writerows(rows)
            return f'<pre class="{class_name}">{escape_html(buf.getvalue().rstrip())}</pre>'
        return wrapped
    return wrap


def _table(class_name: str, headers: list[str], rows: list[list[Any]]) -> str:
    parts = [f'<table class="{class_name}">']
    if headers:
        cells = "".join(f"<th>{escape_html(h)}</th>" for h in headers)
        parts.append(f"<thead><tr>{cells}</tr></thead>")
    parts.append("<tbody>")
    for row in rows:
        cells = "".join(f"<td>{escape_html(str(c))}</td>" for c in row)
        parts.append(f"<tr>{cells}</tr>")
    parts.append("</tbody></table>")
    return "".join(parts)


def sanitize_html(markup: str) -> str:
    """Strip script tags, inline event handlers, and javascript: URLs."""
    markup = _SCRIPT_RE.sub("", markup)
    markup = _HANDLER_RE.sub("", markup)
    return _JS_URL_RE.sub(r'\1=\2#\2', markup)


def html_format(config: Optional[dict] = None) -> Wrapper:
    """Emit the value as raw markup; optionally sanitized and wrapped."""
    cfg = config or {}
    class_name = cfg.get("className", "litpress-html")
    wrap_output = cfg.get("wrap", False)
    sanitize = cfg.get("sanitize", False)

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            if value is None:
                return None
            markup = str(value)
            if sanitize:
                markup = sanitize_html(markup)
            if wrap_output:
                return f'<div class="{class_name}">{markup}</div>'
            return markup
        return wrapped
    return wrap


BUILTIN_FORMATS = {
    "json": json_format,
    "yaml": yaml_format,
    "csv": csv_format,
    "html": html_format,
}
