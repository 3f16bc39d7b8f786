"""Build orchestration: parse, process blocks, write pages and hydration loaders"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from litpress.config import Settings
from litpress.core.cache import BlockCache
from litpress.core.content import ContentHelpers, create_content_helpers
from litpress.core.export import render_body, write_page
from litpress.core.exporter import ExportContext, process_code_blocks, tangle_blocks
from litpress.core.hydrate import HydrateRegistry
from litpress.core.models import BuildReport, DocumentResult, ParsedCodeBlock, ParsedDoc
from litpress.core.params import get_mode, resolve_use
from litpress.core.parse import discover_files, find_code_blocks, parse_file
from litpress.core.plugins import BlockPlugin, default_plugins
from litpress.core.render.registry import WrapperRegistry, create_default_registry
from litpress.core.resolve import BlockResolver
from litpress.core.storage import CacheStorage, FileStorage, MemoryStorage
from litpress.crud.database import make_engine
from litpress.crud.sql_storage import SQLStorage


logger = logging.getLogger(__name__)


def make_storage(settings: Settings) -> CacheStorage:
    """Storage backend named by settings.cache_backend."""
    if settings.cache_backend == "memory":
        return MemoryStorage()
    if settings.cache_backend == "sql":
        return SQLStorage(make_engine(settings.db_url))
    return FileStorage(settings.cache_dir)


def content_root(path: Path) -> Path:
    return path.parent if path.is_file() else path


@dataclass
class BuildEnv:
    """Collaborators shared by every document in one build"""
    settings: Settings
    cache: BlockCache
    helpers: ContentHelpers
    resolver: BlockResolver
    registry: WrapperRegistry = field(default_factory=create_default_registry)
    plugins: list[BlockPlugin] = field(default_factory=default_plugins)
    hydrate: HydrateRegistry = field(default_factory=HydrateRegistry)

    def export_context(self, doc: ParsedDoc) -> ExportContext:
        s = self.settings
        return ExportContext(
            document_path=doc.rel_path,
            cache=self.cache,
            registry=self.registry,
            plugins=self.plugins,
            content_helpers=self.helpers,
            absolute_path=str(doc.path.resolve()),
            default_use=s.default_use,
            language_defaults=s.language_defaults,
            is_dev=s.dev,
            base_url=s.base_url,
            cache_server_results=s.cache_server_results,
            execution_timeout=s.execution_timeout,
            resolve_external=self.resolver.for_document(doc.rel_path),
        )


async def build_document(doc: ParsedDoc, env: BuildEnv) -> DocumentResult:
    """Process one document's blocks and write its page."""
    blocks = [b for _, b in find_code_blocks(doc.tree, doc.rel_path)]
    tangle_blocks(blocks, doc.path.parent)

    exported = await process_code_blocks(doc.tree, env.export_context(doc))
    env.hydrate.set_blocks(doc.rel_path, exported.collected_blocks)

    loader = env.hydrate.entry_for_page(doc.rel_path)
    loader_path = Path(env.settings.cache_dir) / loader if loader else None
    html = render_body(exported.tree, env.settings.parser_config)
    write_page(
        doc, html, Path(env.settings.output_dir),
        exported.collected_blocks, loader_path, exported.errors,
    )
    return DocumentResult(
        path=doc.rel_path,
        html=html,
        collected_blocks=exported.collected_blocks,
        cache_keys=exported.cache_keys,
        errors=exported.errors,
    )


async def run_build(path: str, settings: Settings, storage: Optional[CacheStorage] = None) -> BuildReport:
    """Build every document under path, at most settings.build_concurrency at a time.

    A failing document is logged and recorded in the report; the rest still build.
    """
    source = Path(path)
    if not source.exists():
        raise RuntimeError(f"Path not found: {path}")
    root = content_root(source)
    report = BuildReport()

    docs = []
    for p in discover_files(source):
        try:
            docs.append(parse_file(p, settings.parser_config, root))
        except Exception as e:
            rel = p.relative_to(root).as_posix() if p.is_relative_to(root) else str(p)
            logger.error("Failed to parse %s: %s", rel, e)
            report.failed[rel] = str(e)

    helpers = create_content_helpers(docs, is_dev=settings.dev, base_url=settings.base_url)
    env = BuildEnv(
        settings=settings,
        cache=BlockCache(storage or make_storage(settings), root=str(root)),
        helpers=helpers,
        resolver=BlockResolver(root, settings.parser_config, helpers),
    )
    semaphore = asyncio.Semaphore(settings.build_concurrency)

    async def _one(doc: ParsedDoc) -> None:
        async with semaphore:
            try:
                result = await build_document(doc, env)
            except Exception as e:
                logger.error("Failed to build %s: %s", doc.rel_path, e)
                report.failed[doc.rel_path] = str(e)
                env.hydrate.set_blocks(doc.rel_path, [])
                return
            report.successful.append(result.path)
            logger.info("Built %s (%d client blocks)", result.path, len(result.collected_blocks))

    await asyncio.gather(*(_one(d) for d in docs))

    report.successful.sort()
    report.loaders = [str(p) for p in env.hydrate.generate_entries(Path(settings.cache_dir), env.cache.storage)]
    return report


def document_key(doc: str, settings: Settings) -> str:
    """doc as build keys name it: relative to content_dir when it lies inside."""
    path = Path(doc).resolve()
    root = Path(settings.content_dir).resolve()
    if path.is_relative_to(root):
        return path.relative_to(root).as_posix()
    return doc


def run_clean(settings: Settings, doc: Optional[str] = None, storage: Optional[CacheStorage] = None) -> list[str]:
    """Clear the whole cache, or only one document's entries. Returns removed keys for a document."""
    cache = BlockCache(storage or make_storage(settings), root=settings.content_dir)
    if doc:
        return cache.invalidate_document(document_key(doc, settings))
    cache.clear()
    return []


@dataclass
class BlockListing:
    block: ParsedCodeBlock
    mode: str
    cache_key: Optional[str]


def list_blocks(path: str, settings: Settings) -> list[BlockListing]:
    """Blocks of one document with their resolved mode and client cache key."""
    source = Path(path)
    root = Path(settings.content_dir)
    if not source.resolve().is_relative_to(root.resolve()):
        root = source.parent
    doc = parse_file(source, settings.parser_config, root)
    cache = BlockCache(MemoryStorage())
    listings = []
    for _, block in find_code_blocks(doc.tree, doc.rel_path):
        use = resolve_use(block.annotation.get("use"), block.language, settings.default_use, settings.language_defaults)
        mode = get_mode(use)
        key = None
        if mode not in ("silent", "sourceOnly", "server"):
            key = cache.key_for(doc.rel_path, block.name, block.language, block.code)
        listings.append(BlockListing(block, mode, key))
    return listings
