"""Block plugins: per-language handling for the client and server tracks"""

import re
from typing import Iterable, Optional

from litpress.core.models import BlockContext, CodeBlock, ServerResult, TransformResult
from litpress.core.params import parse_block_parameters


_USE_PLUGIN_RE = re.compile(r':use\s+(\w+)')


class BlockPlugin:
    """Base plugin. Subclasses set the class attributes and override hooks.

    transform() returning None leaves the block untouched on the client track.
    on_server() returning None means the block's own code is executed as is.
    """
    name: str = ""
    extension: str = ""
    languages: tuple[str, ...] = ()
    priority: int = 0

    def matches(self, block: CodeBlock) -> bool:
        return False

    def transform(self, block: CodeBlock, ctx: BlockContext) -> Optional[TransformResult]:
        return None

    def on_server(self, block: CodeBlock, ctx: BlockContext) -> Optional[ServerResult]:
        return None


class PythonPlugin(BlockPlugin):
    name = "python"
    extension = "py"
    languages = ("python", "py", "python3", "pycon")

    def on_server(self, block: CodeBlock, ctx: BlockContext) -> Optional[ServerResult]:
        return ServerResult(code=block.code)


class JavaScriptPlugin(BlockPlugin):
    """Ships the block as an ES module; `:render` marks a module exporting render()."""
    name = "javascript"
    extension = "js"
    languages = ("javascript", "js", "mjs")

    def transform(self, block: CodeBlock, ctx: BlockContext) -> Optional[TransformResult]:
        params = parse_block_parameters(block.annotation_string)
        return TransformResult(code=block.code, exports_render="render" in params)


class CSSPlugin(BlockPlugin):
    name = "css"
    extension = "css"
    languages = ("css",)

    def transform(self, block: CodeBlock, ctx: BlockContext) -> Optional[TransformResult]:
        return TransformResult(code=block.code)


def uses_plugin(annotation: Optional[str], plugin_name: str) -> bool:
    """True when the annotation's `:use` starts with the plugin's name."""
    if not annotation:
        return False
    m = _USE_PLUGIN_RE.search(annotation)
    return bool(m) and m.group(1) == plugin_name


def sort_plugins(plugins: Iterable[BlockPlugin]) -> list[BlockPlugin]:
    """Highest priority first; ties keep registration order."""
    return sorted(plugins, key=lambda p: -p.priority)


def find_matching_plugin(plugins: list[BlockPlugin], block: CodeBlock) -> Optional[BlockPlugin]:
    """Custom matcher or explicit `:use <name>` first, then language, in priority order."""
    ordered = sort_plugins(plugins)
    for plugin in ordered:
        if plugin.matches(block) or uses_plugin(block.annotation_string, plugin.name):
            return plugin
    for plugin in ordered:
        if block.language in plugin.languages:
            return plugin
    return None


def default_plugins() -> list[BlockPlugin]:
    return [PythonPlugin(), JavaScriptPlugin(), CSSPlugin()]
