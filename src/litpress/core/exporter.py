"""Single-pass processing of a document's fenced code blocks.

Each block is dispatched by its mode (first `:use` segment):

- silent: removed from the page; its index is still consumed
- sourceOnly: left as a code listing; never executed or hydrated
- server: executed in the sandbox and replaced by its rendered output
- anything else: handed to the matching plugin's client transform, cached as a
  module, and replaced by a hydration placeholder

Replacements are collected during the walk and applied in one rebuild of the
tree afterwards. Execution and render failures keep the original block.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from markdown_it.token import Token
from markdown_it.tree import SyntaxTreeNode

from litpress.core.cache import BlockCache
from litpress.core.content import ContentHelpers
from litpress.core.execute import execute_server_block
from litpress.core.models import (
    CollectedBlock,
    ExecutionError,
    ExecutionErrorKind,
    ExecutionResult,
    ParsedCodeBlock,
    create_block_context,
)
from litpress.core.params import (
    DEFAULT_MODE,
    NATIVE_EXTENSION,
    SOURCE_WRAPPER,
    get_mode,
    resolve_use,
    source_position,
)
from litpress.core.parse import find_code_blocks
from litpress.core.plugins import BlockPlugin, default_plugins, find_matching_plugin
from litpress.core.render.compose import ExternalResolver, UnknownHook, compose_pipeline
from litpress.core.render.registry import WrapperRegistry, create_default_registry
from litpress.core.utils.hashing import sha256
from litpress.core.utils.slug import dashed


logger = logging.getLogger(__name__)

_MD_IMPORT_RE = re.compile(r'from\s+([\'"])([^\'"]+\.md(?:\?[^\'"]*)?)\1')


@dataclass
class ExportContext:
    """Per-document settings and collaborators for process_code_blocks"""
    document_path: str
    cache: BlockCache
    registry: WrapperRegistry = field(default_factory=create_default_registry)
    plugins: list[BlockPlugin] = field(default_factory=default_plugins)
    content_helpers: Optional[ContentHelpers] = None
    absolute_path: str = ""
    default_use: str = DEFAULT_MODE
    language_defaults: dict[str, str] = field(default_factory=dict)
    is_dev: bool = False
    base_url: str = "/"
    cache_server_results: bool = False
    execution_timeout: Optional[float] = None
    resolve_external: Optional[ExternalResolver] = None
    on_unknown: Optional[UnknownHook] = None


@dataclass
class ExportResult:
    tree: SyntaxTreeNode
    collected_blocks: list[CollectedBlock] = field(default_factory=list)
    cache_keys: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def create_block_id(document_path: str, block: ParsedCodeBlock) -> str:
    return f"block-{dashed(document_path)}-{block.name or block.index}"


def container_id(block: ParsedCodeBlock) -> str:
    return f"litpress-block-{block.index}-result"


def rewrite_md_imports(code: str) -> str:
    """Point `.md` imports at the built `.html` pages; `?name=` imports stay virtual."""
    def _replace(m: re.Match) -> str:
        quote, path = m.group(1), m.group(2)
        if "?" in path:
            return m.group(0)
        return f"from {quote}{path[:-len(NATIVE_EXTENSION)]}.html{quote}"
    return _MD_IMPORT_RE.sub(_replace, code)


def html_node(content: str) -> SyntaxTreeNode:
    token = Token("html_block", "", 0, content=content if content.endswith("\n") else content + "\n", block=True)
    return SyntaxTreeNode([token], create_root=False)


def _arrange(original: SyntaxTreeNode, output: list[SyntaxTreeNode], position: Optional[str]) -> list[SyntaxTreeNode]:
    """Place the original block relative to its output."""
    if position == "replace":
        return [original]
    if position == "before":
        return [original, *output]
    if position == "after":
        return [*output, original]
    return output


def _rebuild(node: SyntaxTreeNode, replacements: dict[int, list[SyntaxTreeNode]]) -> None:
    """Swap replaced nodes in place, building fresh child lists."""
    children = []
    for child in node.children:
        if id(child) in replacements:
            for new in replacements[id(child)]:
                new.parent = node
                children.append(new)
            continue
        if child.children:
            _rebuild(child, replacements)
        children.append(child)
    node.children = children


async def _execute(code: str, language: str, context: ExportContext) -> ExecutionResult:
    run = asyncio.to_thread(execute_server_block, code, language, context.content_helpers)
    if context.execution_timeout is None:
        return await run
    try:
        return await asyncio.wait_for(run, timeout=context.execution_timeout)
    except asyncio.TimeoutError:
        # the worker thread keeps running; only the wait is abandoned
        return ExecutionResult(
            error=ExecutionError(
                kind=ExecutionErrorKind.timeout,
                message=f"Execution exceeded {context.execution_timeout}s",
            ),
            execution_time_ms=context.execution_timeout * 1000,
        )


async def _server_block(
    node: SyntaxTreeNode,
    block: ParsedCodeBlock,
    plugin: BlockPlugin,
    use: str,
    context: ExportContext,
    result: ExportResult,
    ) -> Optional[list[SyntaxTreeNode]]:
    """Execute and render a server block; None keeps the original node."""
    ctx = create_block_context(block, context.document_path, context.absolute_path, context.is_dev, context.base_url)
    server = plugin.on_server(block.as_code_block(), ctx)
    code = server.code if server else block.code
    source_hash = sha256(code)

    record = None
    if context.cache_server_results:
        record = context.cache.read_cached_server_result(context.document_path, block.index, source_hash)
    if record is not None:
        logger.debug("Using cached result for %s block %d", context.document_path, block.index)
        value = record["result"]
    else:
        executed = await _execute(code, block.language, context)
        if executed.error:
            message = f"{context.document_path} block {block.index}: {executed.error.message}"
            logger.error("Server execution failed in %s", message)
            result.errors.append(message)
            return None
        value = executed.value
        if context.cache_server_results:
            context.cache.cache_server_result(context.document_path, block.index, value, source_hash)

    try:
        render = await compose_pipeline(
            use,
            registry=context.registry,
            resolve_external=context.resolve_external,
            on_unknown=context.on_unknown,
            exclude=(SOURCE_WRAPPER,),
        )
        rendered = render(value, ctx)
    except Exception as e:
        message = f"{context.document_path} block {block.index}: render failed: {e}"
        logger.error(message)
        result.errors.append(message)
        return None

    output = [html_node(rendered)] if rendered else []
    return _arrange(node, output, source_position(block.annotation))


def _client_block(
    node: SyntaxTreeNode,
    block: ParsedCodeBlock,
    plugin: BlockPlugin,
    context: ExportContext,
    result: ExportResult,
    ) -> Optional[list[SyntaxTreeNode]]:
    """Cache a client module and emit its placeholder; None keeps the original node."""
    ctx = create_block_context(block, context.document_path, context.absolute_path, context.is_dev, context.base_url)
    transformed = plugin.transform(block.as_code_block(), ctx)
    if transformed is None:
        return None

    code = rewrite_md_imports(transformed.code)
    key = context.cache.key_for(context.document_path, block.name, block.language, block.code)
    cache_path = context.cache.write_block(key, code)
    result.cache_keys.append(key)

    block_id = create_block_id(context.document_path, block)
    position = source_position(block.annotation)
    if plugin.extension == "css":
        return _arrange(node, [html_node(f'<style data-litpress-block="{block_id}">{code}</style>')], position)
    if position == "replace":
        return [node]

    result.collected_blocks.append(CollectedBlock(
        id=block_id,
        container_id=container_id(block),
        cache_path=cache_path,
        module_reference=key,
        name=block.name,
        language=block.language,
        extension=plugin.extension,
        render_mode="render" if transformed.exports_render else "default",
    ))
    placeholder = (
        f'<div id="{container_id(block)}" data-litpress-block="{block_id}" '
        f'class="litpress-block-result"></div>'
    )
    return _arrange(node, [html_node(placeholder)], position)


async def process_code_blocks(tree: SyntaxTreeNode, context: ExportContext) -> ExportResult:
    """Rewrite every fenced code block in tree according to its `:use` mode.

    Raises DuplicateBlockNameError for clashing `:name`s and CacheIOError when
    a module cannot be cached; execution errors are recorded, not raised.
    """
    result = ExportResult(tree=tree)
    replacements: dict[int, list[SyntaxTreeNode]] = {}

    for node, block in find_code_blocks(tree, context.document_path):
        use = resolve_use(block.annotation.get("use"), block.language, context.default_use, context.language_defaults)
        block.annotation["use"] = use
        mode = get_mode(use)
        logger.debug("%s block %d (%s): mode %s", context.document_path, block.index, block.language, mode)

        if mode == "silent":
            replacements[id(node)] = []
            continue
        if mode == "sourceOnly":
            continue

        plugin = find_matching_plugin(context.plugins, block.as_code_block())
        if plugin is None:
            continue

        if mode == "server":
            replacement = await _server_block(node, block, plugin, use, context, result)
        else:
            replacement = _client_block(node, block, plugin, context, result)
        if replacement is not None:
            replacements[id(node)] = replacement

    if replacements:
        _rebuild(tree, replacements)
    return result


def tangle_blocks(blocks: list[ParsedCodeBlock], root: Path) -> list[Path]:
    """Write blocks carrying `:tangle <path>` to that path under root.

    Blocks sharing a target are joined in document order. Returns written paths.
    """
    targets: dict[str, list[str]] = {}
    for block in blocks:
        target = block.annotation.get("tangle")
        if target:
            targets.setdefault(target, []).append(block.code)

    written = []
    for target, parts in targets.items():
        path = root / target
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n\n".join(parts) + "\n", encoding="utf-8")
        logger.debug("Tangled %d block(s) to %s", len(parts), path)
        written.append(path)
    return written
