"""Resolution of cross-document wrapper references (`./lib.md#shout`).

The referenced block is a python block in another document whose exported
value is a wrapper factory: `config -> (render -> render)`.

    ```python :name shout
    def shout(config):
        def wrap(render):
            return lambda value, ctx: (render(value, ctx) or "").upper()
        return wrap
    shout
    ```
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

from litpress.core.content import ContentHelpers
from litpress.core.execute import execute_server_block, is_supported
from litpress.core.models import PipeSegment, Wrapper
from litpress.core.parse import find_code_blocks, parse_file
from litpress.core.render.compose import ExternalResolver


logger = logging.getLogger(__name__)


def resolve_reference_path(reference: str, document_path: str, content_root: Path) -> Path:
    """Absolute references start at the content root; others at the document's directory."""
    if reference.startswith("/"):
        return content_root / reference.lstrip("/")
    return (content_root / document_path).parent / reference


class BlockResolver:
    """Executes referenced blocks once per (document, block) and memoizes the factory"""

    def __init__(
        self,
        content_root: Path,
        parser_config: str = "gfm-like",
        content_helpers: Optional[ContentHelpers] = None,
        ):
        self.content_root = Path(content_root)
        self.parser_config = parser_config
        self.content_helpers = content_helpers
        self._factories: dict[tuple[str, str], Any] = {}

    async def load_factory(self, path: Path, block_name: str) -> Any:
        key = (str(path.resolve()), block_name)
        if key in self._factories:
            return self._factories[key]

        doc = parse_file(path, self.parser_config, self.content_root)
        block = next((b for _, b in find_code_blocks(doc.tree, doc.rel_path) if b.name == block_name), None)
        if block is None:
            logger.warning("Block '%s' not found in %s", block_name, path)
            return None
        if not is_supported(block.language):
            logger.warning("Block '%s' in %s is %s, not python", block_name, path, block.language)
            return None

        result = await asyncio.to_thread(execute_server_block, block.code, block.language, self.content_helpers)
        if result.error:
            logger.warning("Block '%s' in %s failed: %s", block_name, path, result.error.message)
            return None
        self._factories[key] = result.value
        return result.value

    async def resolve(self, segment: PipeSegment, document_path: str) -> Optional[Wrapper]:
        if not segment.block_name:
            logger.warning("External reference '%s' names no block", segment.name)
            return None
        path = resolve_reference_path(segment.name, document_path, self.content_root)
        if not path.is_file():
            logger.warning("External reference '%s' from %s: no such file", segment.name, document_path)
            return None

        factory = await self.load_factory(path, segment.block_name)
        if not callable(factory):
            return None
        wrapper = factory(segment.config)
        return wrapper if callable(wrapper) else None

    def for_document(self, document_path: str) -> ExternalResolver:
        """Bind to the referencing document, giving the shape compose_wrappers expects."""
        async def resolve_external(segment: PipeSegment) -> Optional[Wrapper]:
            return await self.resolve(segment, document_path)
        return resolve_external
