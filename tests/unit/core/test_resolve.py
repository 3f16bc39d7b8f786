"""Unit tests for core/resolve.py"""

from pathlib import Path

import pytest

from litpress.core.params import parse_pipe
from litpress.core.resolve import BlockResolver, resolve_reference_path


LIB_MD = """\
# Shared wrappers

```python :name shout
def shout(config):
    suffix = config.get("suffix", "")
    def wrap(render):
        return lambda value, ctx: (render(value, ctx) or "").upper() + suffix
    return wrap
shout
```

```python :name counter
CALLS = []
def counter(config):
    CALLS.append(1)
    return lambda render: render
export(counter)
```

```js :name client
export default 1;
```

```python :name broken
1 / 0
```

```python :name plain
42
```
"""


@pytest.fixture(name="content_root")
def content_root_fixture(tmp_path):
    (tmp_path / "shared").mkdir()
    (tmp_path / "shared" / "lib.md").write_text(LIB_MD, encoding="utf-8")
    (tmp_path / "blog").mkdir()
    return tmp_path


@pytest.fixture(name="resolver")
def resolver_fixture(content_root):
    return BlockResolver(content_root)


def _segment(reference: str):
    (segment,) = parse_pipe(reference)
    return segment


@pytest.mark.parametrize("reference,expected", [
    ("./lib.md", "blog/lib.md"),
    ("../shared/lib.md", "blog/../shared/lib.md"),
    ("/shared/lib.md", "shared/lib.md"),
])
def test_resolve_reference_path(reference, expected):
    """Relative references start at the document's directory, absolute ones at the root."""
    root = Path("/site")
    assert resolve_reference_path(reference, "blog/post.md", root) == root / expected


@pytest.mark.asyncio
async def test_resolve_wrapper_factory(resolver, block_ctx):
    """The referenced block's exported factory is called with the segment config."""
    wrapper = await resolver.resolve(_segment("../shared/lib.md#shout"), "blog/post.md")
    assert wrapper is not None
    render = wrapper(lambda value, ctx: value)
    assert render("hey", block_ctx) == "HEY"


@pytest.mark.asyncio
async def test_resolve_query_name_and_config(resolver, block_ctx):
    """?name= selects the block; other keys configure the factory."""
    wrapper = await resolver.resolve(_segment("/shared/lib.md?name=shout&suffix=!"), "blog/post.md")
    assert wrapper(lambda value, ctx: value)("hey", block_ctx) == "HEY!"


@pytest.mark.asyncio
async def test_factory_executed_once(resolver, content_root):
    """A referenced block runs once; later resolutions reuse the factory."""
    resolve = resolver.for_document("blog/post.md")
    for _ in range(3):
        assert await resolve(_segment("../shared/lib.md#counter")) is not None
    factory = await resolver.load_factory(content_root / "shared" / "lib.md", "counter")
    assert len(factory.__globals__["CALLS"]) == 3


@pytest.mark.parametrize("reference", [
    "../shared/lib.md#missing",
    "../shared/lib.md#client",
    "../shared/lib.md#broken",
    "../shared/lib.md#plain",
    "../nowhere.md#shout",
    "../shared/lib.md",
])
@pytest.mark.asyncio
async def test_unresolvable_references(resolver, reference):
    """Missing files or blocks, non-python, failing, or non-callable blocks resolve to None."""
    assert await resolver.resolve(_segment(reference), "blog/post.md") is None
