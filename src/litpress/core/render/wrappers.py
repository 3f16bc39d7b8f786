"""Presentation wrappers: transforms that add structure around a render function.

Each factory takes the segment's parsed config and returns a Wrapper
(`render -> render'`). Configs use the same camelCase keys as `:use` syntax,
e.g. `withCollapse?summary=Details&open`.
"""

import json
import traceback
from typing import Any, Optional

from litpress.core.models import BlockContext, RenderFunction, Wrapper
from litpress.core.utils.hashing import short_hash
from litpress.core.utils.html import escape_attr, escape_html


def with_source_code(config: Optional[dict] = None) -> Wrapper:
    """Show the block source before, after, or instead of the rendered result."""
    cfg = config or {}
    position = cfg.get("position", "after")
    label = cfg.get("label", "Source")
    line_numbers = bool(cfg.get("lineNumbers", False))
    class_name = cfg.get("className", "litpress-source-code")

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            code = _number_lines(ctx.block.content) if line_numbers else ctx.block.content
            label_html = f'<div class="litpress-source-label">{escape_html(label)}</div>' if label else ""
            source = (
                f'<div class="{class_name}">{label_html}'
                f'<pre><code class="language-{ctx.block.language}">{escape_html(code)}</code></pre></div>'
            )
            if position == "replace":
                return source

            rendered = render(value, ctx) or ""
            if position == "before":
                return f"{source}\n{rendered}"
            return f"{rendered}\n{source}"
        return wrapped
    return wrap


def _number_lines(code: str) -> str:
    lines = code.split("\n")
    width = len(str(len(lines)))
    return "\n".join(f"{i + 1:>{width}} | {line}" for i, line in enumerate(lines))


def with_error_boundary(config: Optional[dict] = None) -> Wrapper:
    """Catch exceptions raised by the inner render and emit a fallback."""
    cfg = config or {}
    fallback = cfg.get("fallback", "Error rendering block")
    class_name = cfg.get("className", "litpress-error-boundary")
    show_error = cfg.get("showError", True)
    show_stack = cfg.get("showStack", False)

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            try:
                return render(value, ctx)
            except Exception as e:
                message = escape_html(str(e))
                content = fallback.replace("{error}", message)
                if show_error and "{error}" not in fallback:
                    content += f'<div class="litpress-error-message">{message}</div>'
                if show_stack and ctx.runtime.is_dev:
                    content += f'<pre class="litpress-error-stack">{escape_html(traceback.format_exc())}</pre>'
                return f'<div class="{class_name}" data-error="true">{content}</div>'
        return wrapped
    return wrap


def with_container(config: Optional[dict] = None) -> Wrapper:
    """Wrap the rendered output in an element carrying block data attributes."""
    cfg = config or {}
    class_name = cfg.get("className", "litpress-block-container")
    style = cfg.get("style")
    tag = cfg.get("tag", "div")
    data = cfg.get("data") or {}

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            rendered = render(value, ctx)
            if rendered is None:
                return None
            style_attr = f' style="{escape_attr(_format_style(style))}"' if style else ""
            attrs = _data_attributes(data) + _data_attributes({
                "block-language": ctx.block.language,
                "block-name": ctx.block.name or "",
                "block-index": str(ctx.block.index),
            })
            return f'<{tag} class="{class_name}"{style_attr}{attrs}>{rendered}</{tag}>'
        return wrapped
    return wrap


def _format_style(style: Any) -> str:
    """camelCase keys -> kebab-case; bare numbers get px."""
    if isinstance(style, str):
        return style
    parts = []
    for key, value in style.items():
        css_key = "".join(f"-{c.lower()}" if c.isupper() else c for c in key)
        css_value = f"{value}px" if isinstance(value, (int, float)) and not isinstance(value, bool) else value
        parts.append(f"{css_key}: {css_value}")
    return "; ".join(parts)


def _data_attributes(data: dict) -> str:
    return "".join(
        f' data-{key}="{escape_attr(str(value))}"'
        for key, value in data.items()
        if value != ""
    )


def with_collapse(config: Optional[dict] = None) -> Wrapper:
    """Put the rendered output inside a <details> panel."""
    cfg = config or {}
    summary = str(cfg.get("summary", "Result"))
    is_open = bool(cfg.get("open", False))
    class_name = cfg.get("className", "litpress-collapse")
    use_block_name = bool(cfg.get("useBlockName", False))

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            rendered = render(value, ctx)
            if rendered is None:
                return None
            text = ctx.block.name if use_block_name and ctx.block.name else summary
            open_attr = " open" if is_open else ""
            return (
                f'<details class="{class_name}"{open_attr}>\n'
                f'  <summary>{escape_html(text)}</summary>\n'
                f'  <div class="litpress-collapse-content">{rendered}</div>\n'
                f'</details>'
            )
        return wrapped
    return wrap


TABS_SCRIPT = """\
<script type="module">
(() => {
  const container = document.querySelector('[data-tabs-id="%s"]');
  if (!container) return;
  const tabs = container.querySelectorAll('.litpress-tab');
  const panels = container.querySelectorAll('.litpress-tab-panel');
  tabs.forEach((tab) => tab.addEventListener('click', () => {
    tabs.forEach((t) => t.classList.toggle('active', t === tab));
    panels.forEach((p) => p.classList.toggle('active', p.dataset.panel === tab.dataset.tab));
  }));
})();
</script>"""


def with_tabs(config: Optional[dict] = None) -> Wrapper:
    """Result and source side by side as two tabs; defaultTab picks the visible one."""
    cfg = config or {}
    result_label = cfg.get("resultLabel", "Result")
    source_label = cfg.get("sourceLabel", "Source")
    source_first = cfg.get("defaultTab", "result") == "source"
    class_name = cfg.get("className", "litpress-tabs")

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            rendered = render(value, ctx) or ""
            # stable across rebuilds of the same block
            tabs_id = f"tabs-{short_hash(f'{ctx.file.path}:{ctx.block.index}')}"
            result_active = "" if source_first else " active"
            source_active = " active" if source_first else ""
            return (
                f'<div class="{class_name}" data-tabs-id="{tabs_id}">\n'
                f'  <div class="litpress-tabs-header">\n'
                f'    <button class="litpress-tab{result_active}" data-tab="result" type="button">'
                f'{escape_html(result_label)}</button>\n'
                f'    <button class="litpress-tab{source_active}" data-tab="source" type="button">'
                f'{escape_html(source_label)}</button>\n'
                f'  </div>\n'
                f'  <div class="litpress-tab-panel{result_active}" data-panel="result">{rendered}</div>\n'
                f'  <div class="litpress-tab-panel{source_active}" data-panel="source">'
                f'<pre><code class="language-{ctx.block.language}">{escape_html(ctx.block.content)}</code></pre></div>\n'
                f'</div>\n'
                + TABS_SCRIPT % tabs_id
            )
        return wrapped
    return wrap


def _console_text(arg: Any) -> str:
    if isinstance(arg, str):
        return arg
    if callable(arg):
        return f"[Function: {getattr(arg, '__name__', 'anonymous')}]"
    try:
        return json.dumps(arg)
    except (TypeError, ValueError):
        return str(arg)


def _console_html(entries: list, class_name: str, label: str, max_lines: int) -> str:
    if not entries:
        return ""
    hidden = len(entries) - max_lines if 0 < max_lines < len(entries) else 0
    lines = []
    for entry in entries[hidden:]:
        kind = entry.get("type", "log") if isinstance(entry, dict) else "log"
        args = entry.get("args", []) if isinstance(entry, dict) else [entry]
        text = " ".join(_console_text(a) for a in args)
        lines.append(f'<div class="litpress-console-{escape_attr(kind)}">{escape_html(text)}</div>')
    label_html = f'<div class="litpress-console-label">{escape_html(label)}</div>' if label else ""
    hidden_html = f'<div class="litpress-console-truncated">({hidden} earlier entries hidden)</div>' if hidden else ""
    return f'<div class="{class_name}">{label_html}{hidden_html}{"".join(lines)}</div>'


def with_console(config: Optional[dict] = None) -> Wrapper:
    """Show console entries carried by the value.

    A value shaped {"value": ..., "console": [{"type": "log", "args": [...]}, ...]}
    renders its console entries around the inner render of "value". Any other
    value passes straight through.
    """
    cfg = config or {}
    position = cfg.get("position", "after")
    class_name = cfg.get("className", "litpress-console")
    label = cfg.get("label", "Console")
    max_lines = int(cfg.get("maxLines", 0))

    def wrap(render: RenderFunction) -> RenderFunction:
        def wrapped(value: Any, ctx: BlockContext) -> Optional[str]:
            entries = []
            if isinstance(value, dict) and isinstance(value.get("console"), list):
                entries = value["console"]
                value = value.get("value")
            console = _console_html(entries, class_name, label, max_lines)
            if position == "replace":
                return console or None

            rendered = render(value, ctx) or ""
            if not console:
                return rendered
            if position == "before":
                return f"{console}\n{rendered}"
            return f"{rendered}\n{console}"
        return wrapped
    return wrap


BUILTIN_WRAPPERS = {
    "withSourceCode": with_source_code,
    "withErrorBoundary": with_error_boundary,
    "withContainer": with_container,
    "withCollapse": with_collapse,
    "withTabs": with_tabs,
    "withConsole": with_console,
}
