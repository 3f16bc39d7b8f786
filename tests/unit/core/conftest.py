"""Shared fixtures for core unit tests"""

import pytest
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from litpress.core.cache import BlockCache
from litpress.core.exporter import ExportContext
from litpress.core.models import ParsedCodeBlock, create_block_context
from litpress.core.render.registry import create_default_registry
from litpress.core.storage import MemoryStorage


SAMPLE_MD = """\
# Notebook

Some prose.

```python :use server | json :name totals
{"a": 1}
```

- a list item

  ```js
  export default 1;
  ```

```python :use silent
print("never")
```
"""


@pytest.fixture(name="sample_md")
def sample_md_fixture():
    return SAMPLE_MD


@pytest.fixture(name="parser")
def parser_fixture():
    return MarkdownIt("gfm-like", options_update={"linkify": False})


@pytest.fixture(name="make_tree")
def make_tree_fixture(parser):
    """Factory: markdown text -> SyntaxTreeNode."""
    def _make(text: str) -> SyntaxTreeNode:
        return SyntaxTreeNode(parser.parse(text))
    return _make


@pytest.fixture(name="render_html")
def render_html_fixture(parser):
    """Factory: SyntaxTreeNode -> HTML string."""
    def _render(tree: SyntaxTreeNode) -> str:
        return parser.renderer.render(tree.to_tokens(), parser.options, {})
    return _render


@pytest.fixture(name="registry")
def registry_fixture():
    return create_default_registry()


@pytest.fixture(name="storage")
def storage_fixture():
    return MemoryStorage()


@pytest.fixture(name="cache")
def cache_fixture(storage):
    return BlockCache(storage)


@pytest.fixture(name="export_context")
def export_context_fixture(cache, registry):
    """Factory for an ExportContext over the in-memory cache."""
    def _make(document_path: str = "notes/doc.md", **kwargs) -> ExportContext:
        return ExportContext(document_path=document_path, cache=cache, registry=registry, **kwargs)
    return _make


@pytest.fixture(name="block_ctx")
def block_ctx_fixture():
    """BlockContext for a small named python block."""
    block = ParsedCodeBlock(
        language="python",
        code="x = 1\nx",
        annotation_string=":name demo",
        annotation={"name": "demo"},
        index=2,
        name="demo",
    )
    return create_block_context(block, "notes/doc.md")
