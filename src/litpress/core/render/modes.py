"""Base render modes: the first segment of a `:use` pipeline"""

import json
from typing import Any, Optional

from litpress.core.models import BlockContext, RenderFunction
from litpress.core.utils.html import escape_html


def default_render(value: Any, ctx: BlockContext) -> Optional[str]:
    """Render a value as text: None passes through, containers become JSON."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return str(value)
    try:
        return json.dumps(value, indent=2)
    except (TypeError, ValueError):
        return str(value)


def preview_mode(config: Optional[dict] = None) -> RenderFunction:
    return default_render


def server_mode(config: Optional[dict] = None) -> RenderFunction:
    return default_render


def raw_mode(config: Optional[dict] = None) -> RenderFunction:
    """Emit str(value) with no formatting."""
    def render(value: Any, ctx: BlockContext) -> Optional[str]:
        return None if value is None else str(value)
    return render


def source_only_mode(config: Optional[dict] = None) -> RenderFunction:
    """Ignore the value and show the block's source."""
    class_name = (config or {}).get("className", "litpress-source")

    def render(value: Any, ctx: BlockContext) -> Optional[str]:
        code = escape_html(ctx.block.content)
        return (
            f'<pre class="{class_name}">'
            f'<code class="language-{ctx.block.language}">{code}</code></pre>'
        )
    return render


def silent_mode(config: Optional[dict] = None) -> RenderFunction:
    def render(value: Any, ctx: BlockContext) -> Optional[str]:
        return None
    return render


BUILTIN_MODES = {
    "preview": preview_mode,
    "server": server_mode,
    "raw": raw_mode,
    "sourceOnly": source_only_mode,
    "silent": silent_mode,
}
