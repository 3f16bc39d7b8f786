"""Hydration loaders linking page placeholders to cached block modules.

Each document with client blocks gets one loader, `hydrate-<doc>.js`, that
statically imports the document's block modules and hands them to the shared
runtime's `initBlocks`. Loader names encode the document path with `__` as the
directory separator, so `document_path_from_loader` can recover it.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from litpress.core.cache import SEGMENT_SEPARATOR, sanitize_path
from litpress.core.models import CollectedBlock
from litpress.core.params import NATIVE_EXTENSION
from litpress.core.storage import CacheStorage


logger = logging.getLogger(__name__)

LOADER_PREFIX = "hydrate-"
LOADER_SUFFIX = ".js"
RUNTIME_FILE = "hydrate-runtime.js"

RUNTIME_JS = """\
// Auto-generated litpress hydration runtime

function renderResult(el, result) {
  if (result === null || result === undefined) return;
  if (typeof result === "function") {
    result(el.id);
  } else if (result instanceof HTMLElement) {
    if (!el.hasChildNodes()) el.appendChild(result);
  } else if (typeof result === "string") {
    if (result.trim().startsWith("<")) {
      el.innerHTML = result;
    } else {
      el.textContent = result;
    }
  } else if (typeof result === "number" || typeof result === "boolean") {
    el.textContent = String(result);
  } else if (typeof result === "object") {
    const pre = document.createElement("pre");
    pre.textContent = JSON.stringify(result, null, 2);
    el.replaceChildren(pre);
  }
}

async function hydrateBlock(entry) {
  const el = document.getElementById(entry.containerId);
  if (!el) return;
  try {
    let result = await entry.module.default;
    if (entry.renderMode === "render" && typeof entry.module.render === "function") {
      renderResult(el, entry.module.render(result, el));
    } else {
      renderResult(el, result);
    }
  } catch (error) {
    console.error(`[litpress] Failed to hydrate block ${entry.id}:`, error);
  }
}

export function initBlocks(entries) {
  const run = async () => {
    for (const entry of entries) {
      await hydrateBlock(entry);
    }
  };
  if (document.readyState === "loading") {
    document.addEventListener("DOMContentLoaded", run);
  } else {
    run();
  }
}
"""


def loader_name(document_path: str) -> str:
    segments = sanitize_path(document_path).split("/")
    return f"{LOADER_PREFIX}{SEGMENT_SEPARATOR.join(segments)}{LOADER_SUFFIX}"


def document_path_from_loader(name: str) -> str:
    """Inverse of loader_name for sanitized (lower-case, dash-safe) paths."""
    stem = Path(name).name.removeprefix(LOADER_PREFIX).removesuffix(LOADER_SUFFIX)
    return "/".join(stem.split(SEGMENT_SEPARATOR)) + NATIVE_EXTENSION


def _relative_to_root(block: CollectedBlock, cache_root: Optional[Path]) -> Optional[str]:
    if cache_root is None:
        return None
    try:
        return Path(block.cache_path).relative_to(Path(cache_root).resolve()).as_posix()
    except ValueError:
        return None


def _import_path(block: CollectedBlock, cache_root: Optional[Path]) -> str:
    """Module path relative to the loader, which sits in the cache root."""
    return "./" + (_relative_to_root(block, cache_root) or block.module_reference)


def generate_hydrate_entry(document_path: str, blocks: list[CollectedBlock], cache_root: Optional[Path] = None) -> str:
    """JS loader source for one document's blocks."""
    lines = [f"// Auto-generated hydrate entry for {document_path}"]
    lines.append(f'import {{ initBlocks }} from "./{RUNTIME_FILE}";')
    for i, block in enumerate(blocks):
        lines.append(f'import * as block_{i} from "{_import_path(block, cache_root)}";')
    lines.append("")
    lines.append("initBlocks([")
    for i, block in enumerate(blocks):
        fields = ", ".join([
            f"id: {json.dumps(block.id)}",
            f"containerId: {json.dumps(block.container_id)}",
            f"module: block_{i}",
            f"extension: {json.dumps(block.extension)}",
            f"renderMode: {json.dumps(block.render_mode)}",
        ])
        lines.append(f"  {{ {fields} }},")
    lines.append("]);")
    lines.append("")
    return "\n".join(lines)


def generate_hydrate_script(src: str) -> str:
    return f'<script type="module" src="{src}"></script>'


def _copy_modules(blocks: list[CollectedBlock], cache_root: Path, storage: CacheStorage) -> None:
    for block in blocks:
        if _relative_to_root(block, cache_root) is not None:
            continue
        code = storage.read(block.module_reference)
        if code is None:
            logger.warning("Module %s missing from storage", block.module_reference)
            continue
        target = cache_root / block.module_reference
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(code, encoding="utf-8")


class HydrateRegistry:
    """Per-document lists of client blocks awaiting hydration"""

    def __init__(self):
        self._blocks: dict[str, list[CollectedBlock]] = {}

    def set_blocks(self, document_path: str, blocks: list[CollectedBlock]) -> None:
        """Replace a document's blocks; reprocessing a document never duplicates."""
        self._blocks[document_path] = list(blocks)

    def add_block(self, document_path: str, block: CollectedBlock) -> None:
        self._blocks.setdefault(document_path, []).append(block)

    def get_blocks(self, document_path: str) -> list[CollectedBlock]:
        return list(self._blocks.get(document_path, []))

    def pages(self) -> list[str]:
        return list(self._blocks)

    def clear(self) -> None:
        self._blocks.clear()

    def entry_for_page(self, document_path: str) -> Optional[str]:
        """Loader file name for a document, or None if it has nothing to hydrate."""
        if not self._blocks.get(document_path):
            return None
        return loader_name(document_path)

    def generate_entries(self, cache_root: Path, storage: Optional[CacheStorage] = None) -> list[Path]:
        """Write loaders plus the shared runtime into cache_root. Returns loader paths.

        Modules held outside cache_root (sql or memory storage) are copied from
        storage next to the loader so its relative imports resolve.
        """
        cache_root = Path(cache_root)
        written = []
        for document_path, blocks in self._blocks.items():
            if not blocks:
                continue
            cache_root.mkdir(parents=True, exist_ok=True)
            if storage is not None:
                _copy_modules(blocks, cache_root, storage)
            path = cache_root / loader_name(document_path)
            path.write_text(generate_hydrate_entry(document_path, blocks, cache_root), encoding="utf-8")
            logger.debug("Wrote loader %s (%d blocks)", path, len(blocks))
            written.append(path)
        if written:
            (cache_root / RUNTIME_FILE).write_text(RUNTIME_JS, encoding="utf-8")
        return written
