"""Content-addressable cache for block modules and server execution records.

Block modules live at `<sanitized document path>/<name or hash8>.<ext>`, so the
same document, name/content, and language always map to the same key.
Execution records live under `server-results/` and carry the hash of the
source that produced them; a record whose hash no longer matches is ignored.
"""

import json
import logging
import os
import re
import time
from typing import Any, Optional

from litpress.core.params import NATIVE_EXTENSION
from litpress.core.storage import CacheStorage
from litpress.core.utils.hashing import short_hash


logger = logging.getLogger(__name__)

SERVER_RESULTS_DIR = "server-results"
# sanitize_path never emits "_", so this is unambiguous
SEGMENT_SEPARATOR = "__"

LANGUAGE_EXTENSIONS = {
    "javascript": "js",
    "js": "js",
    "mjs": "mjs",
    "typescript": "ts",
    "ts": "ts",
    "jsx": "jsx",
    "tsx": "tsx",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "less": "less",
    "python": "py",
    "py": "py",
    "python3": "py",
    "pycon": "py",
    "rust": "rs",
    "go": "go",
    "shell": "sh",
    "bash": "sh",
    "sh": "sh",
    "html": "html",
    "json": "json",
    "yaml": "yaml",
    "yml": "yml",
    "toml": "toml",
    "sql": "sql",
    "graphql": "gql",
    "markdown": "md",
    "md": "md",
}


def sanitize_path(document_path: str, root: Optional[str] = None) -> str:
    """Normalize a document path into a cache directory key.

    sanitize_path("content/My Post.md") -> "content/my-post"
    """
    path = str(document_path)
    if os.path.isabs(path):
        path = os.path.relpath(path, root or os.getcwd())

    if path.lower().endswith(NATIVE_EXTENSION):
        path = path[:-len(NATIVE_EXTENSION)]
    path = path.replace("\\", "/")
    path = re.sub(r'^[./]+', '', path)
    path = re.sub(r'\s+', '-', path)
    path = re.sub(r'[^a-zA-Z0-9/-]', '', path)
    path = re.sub(r'/+', '/', path)
    path = re.sub(r'-+', '-', path)
    return path.rstrip("/").lower()


def get_block_hash(code: str) -> str:
    return short_hash(code, 8)


def get_language_extension(language: str) -> str:
    lower = language.lower()
    return LANGUAGE_EXTENSIONS.get(lower, lower)


def block_cache_key(
    document_path: str,
    name: Optional[str],
    language: str,
    code: str = "",
    root: Optional[str] = None,
    ) -> str:
    """Deterministic key for a block module: '<doc>/<name|hash8>.<ext>'."""
    file_name = name or (get_block_hash(code) if code else "unnamed")
    return f"{sanitize_path(document_path, root)}/{file_name}.{get_language_extension(language)}"


def _flat(document_path: str, root: Optional[str] = None) -> str:
    return sanitize_path(document_path, root).replace("/", SEGMENT_SEPARATOR)


def server_result_key(document_path: str, block_index: int, root: Optional[str] = None) -> str:
    return f"{SERVER_RESULTS_DIR}/server-{_flat(document_path, root)}-{block_index}.json"


class BlockCache:
    """Cache operations over an injected CacheStorage"""

    def __init__(self, storage: CacheStorage, root: Optional[str] = None):
        self.storage = storage
        self.root = root

    def key_for(self, document_path: str, name: Optional[str], language: str, code: str = "") -> str:
        return block_cache_key(document_path, name, language, code, self.root)

    def write_block(self, key: str, code: str) -> str:
        """Store a module; returns its location. Raises CacheIOError."""
        self.storage.write(key, code)
        logger.debug("Cached block module %s", key)
        return self.storage.locate(key)

    def read_block(self, key: str) -> Optional[str]:
        return self.storage.read(key)

    def locate(self, key: str) -> str:
        return self.storage.locate(key)

    def cache_server_result(
        self,
        document_path: str,
        block_index: int,
        result: Any,
        source_hash: str,
        ) -> bool:
        """Store an execution record; False if the result is not JSON-serializable."""
        record = {
            "result": result,
            "timestamp": int(time.time() * 1000),
            "document_path": str(document_path),
            "block_index": block_index,
            "hash": source_hash,
        }
        try:
            data = json.dumps(record, indent=2)
        except (TypeError, ValueError):
            logger.debug("Result of %s block %d is not serializable; not cached", document_path, block_index)
            return False
        self.storage.write(server_result_key(document_path, block_index, self.root), data)
        return True

    def read_cached_server_result(
        self,
        document_path: str,
        block_index: int,
        source_hash: Optional[str] = None,
        ) -> Optional[dict[str, Any]]:
        """The stored record, or None when missing, corrupt, or stale."""
        data = self.storage.read(server_result_key(document_path, block_index, self.root))
        if data is None:
            return None
        try:
            record = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Corrupt execution record for %s block %d", document_path, block_index)
            return None
        if not isinstance(record, dict) or "result" not in record:
            return None
        if source_hash is not None and record.get("hash") != source_hash:
            return None
        return record

    def invalidate_document(self, document_path: str) -> list[str]:
        """Remove a document's block modules and execution records. Returns removed keys."""
        doc_prefix = sanitize_path(document_path, self.root) + "/"
        record_re = re.compile(
            re.escape(f"{SERVER_RESULTS_DIR}/server-{_flat(document_path, self.root)}-") + r'\d+\.json$'
        )
        removed = self.storage.keys(doc_prefix)
        removed += [k for k in self.storage.keys(SERVER_RESULTS_DIR + "/") if record_re.match(k)]
        for key in removed:
            self.storage.delete(key)
        return removed

    def clear(self) -> None:
        self.storage.clear()
