"""Integration tests for the build pipeline: parse -> process blocks -> write pages and loaders.

The content tree below is built once per test and run through run_build with
file-backed cache storage. Read top-to-bottom as a reference for what a build
produces with default settings.

Content tree
------------
    content/
        index.md          client js block "hello", server block reading `content`
        blog/post.md      server block formatted as json, a tangled block
        blog/broken.md    two blocks named "dup" -> build failure for this page

Expected output
---------------
    dist/index.html       placeholder + <script> pointing at ../cache/hydrate-index.js
    dist/index.json       sidecar listing the collected "hello" block
    dist/blog/post.html   formatted server output, no code listing
    cache/index/hello.js  cached client module
    cache/hydrate-index.js, cache/hydrate-runtime.js
"""

import json

import pytest

from litpress.config import Settings
from litpress.core.pipeline import list_blocks, run_build, run_clean
from litpress.core.storage import MemoryStorage


INDEX_MD = """\
---
title: Home
---

# Welcome

```js :name hello
export default "hello";
```

```python :use server
len(content.get_pages())
```
"""

POST_MD = """\
---
title: First Post
date: 2024-05-01
---

# Post

```python :use server | json
{"answer": 42}
```

```python :use silent :tangle generated/answer.py
ANSWER = 42
```
"""

BROKEN_MD = """\
```js :name dup
1
```

```js :name dup
2
```
"""


@pytest.fixture(name="content")
def content_fixture(tmp_path):
    root = tmp_path / "content"
    (root / "blog").mkdir(parents=True)
    (root / "index.md").write_text(INDEX_MD, encoding="utf-8")
    (root / "blog" / "post.md").write_text(POST_MD, encoding="utf-8")
    (root / "blog" / "broken.md").write_text(BROKEN_MD, encoding="utf-8")
    return root


@pytest.fixture(name="settings")
def settings_fixture(tmp_path, content):
    return Settings(
        content_dir=str(content),
        output_dir=str(tmp_path / "dist"),
        cache_dir=str(tmp_path / "cache"),
    )


# --- report ---

@pytest.mark.asyncio
async def test_build_report(content, settings, tmp_path):
    """Good pages build; the broken one is reported without stopping the rest."""
    report = await run_build(str(content), settings)
    assert report.successful == ["blog/post.md", "index.md"]
    assert list(report.failed) == ["blog/broken.md"]
    assert "Duplicate block name 'dup'" in report.failed["blog/broken.md"]
    assert report.loaders == [str(tmp_path / "cache" / "hydrate-index.js")]


@pytest.mark.asyncio
async def test_build_missing_path(settings, tmp_path):
    with pytest.raises(RuntimeError, match="Path not found"):
        await run_build(str(tmp_path / "nope"), settings)


# --- pages ---

@pytest.mark.asyncio
async def test_client_page_output(content, settings, tmp_path):
    """A page with client blocks gets a placeholder and its loader script."""
    await run_build(str(content), settings)
    html = (tmp_path / "dist" / "index.html").read_text(encoding="utf-8")
    assert "<title>Home</title>" in html
    assert '<div id="litpress-block-0-result" data-litpress-block="block-index-md-hello"' in html
    assert '<script type="module" src="../cache/hydrate-index.js"></script>' in html
    assert "export default" not in html


@pytest.mark.asyncio
async def test_server_block_sees_content(content, settings, tmp_path):
    """Server blocks can query every page parsed in the build."""
    await run_build(str(content), settings)
    html = (tmp_path / "dist" / "index.html").read_text(encoding="utf-8")
    assert "\n3\n" in html


@pytest.mark.asyncio
async def test_server_page_output(content, settings, tmp_path):
    """Server-only pages carry formatted output and no loader."""
    await run_build(str(content), settings)
    html = (tmp_path / "dist" / "blog" / "post.html").read_text(encoding="utf-8")
    assert "&quot;answer&quot;: 42" in html
    assert "language-python" not in html
    assert "<script" not in html
    assert "ANSWER" not in html


@pytest.mark.asyncio
async def test_sidecar_json(content, settings, tmp_path):
    """The sidecar lists the page's hydrated blocks and loader."""
    await run_build(str(content), settings)
    data = json.loads((tmp_path / "dist" / "index.json").read_text(encoding="utf-8"))
    assert set(data) == {"path", "slug", "hash", "frontmatter", "loader", "blocks", "errors"}
    assert data["path"] == "index.md"
    assert data["loader"] == "../cache/hydrate-index.js"
    (block,) = data["blocks"]
    assert block["module_reference"] == "index/hello.js"
    assert block["name"] == "hello"
    assert data["errors"] == []


# --- cache and loaders ---

@pytest.mark.asyncio
async def test_cache_and_loader_files(content, settings, tmp_path):
    """Client modules, the page loader, and the runtime land in the cache dir."""
    await run_build(str(content), settings)
    cache = tmp_path / "cache"
    assert (cache / "index" / "hello.js").read_text(encoding="utf-8") == 'export default "hello";'
    loader = (cache / "hydrate-index.js").read_text(encoding="utf-8")
    assert 'import * as block_0 from "./index/hello.js";' in loader
    assert (cache / "hydrate-runtime.js").exists()
    assert not (cache / "hydrate-blog__post.js").exists()


@pytest.mark.asyncio
async def test_tangle_written_next_to_document(content, settings):
    await run_build(str(content), settings)
    assert (content / "blog" / "generated" / "answer.py").read_text(encoding="utf-8") == "ANSWER = 42\n"


@pytest.mark.asyncio
async def test_rebuild_is_stable(content, settings, tmp_path):
    """Building twice yields the same pages and cache keys."""
    await run_build(str(content), settings)
    first = (tmp_path / "dist" / "index.html").read_text(encoding="utf-8")
    report = await run_build(str(content), settings)
    assert (tmp_path / "dist" / "index.html").read_text(encoding="utf-8") == first
    assert report.successful == ["blog/post.md", "index.md"]


@pytest.mark.parametrize("concurrency", [1, 8])
@pytest.mark.asyncio
async def test_concurrency_does_not_change_output(content, settings, tmp_path, concurrency):
    """Pages are identical whatever the number of concurrent documents."""
    for i in range(6):
        (content / f"page{i}.md").write_text(f"```js :name b{i}\nexport default {i};\n```\n", encoding="utf-8")
    settings.build_concurrency = concurrency

    report = await run_build(str(content), settings)

    assert len(report.successful) == 8
    for i in range(6):
        html = (tmp_path / "dist" / f"page{i}.html").read_text(encoding="utf-8")
        assert f'data-litpress-block="block-page{i}-md-b{i}"' in html
        loader = (tmp_path / "cache" / f"hydrate-page{i}.js").read_text(encoding="utf-8")
        assert f'"./page{i}/b{i}.js"' in loader


@pytest.mark.asyncio
async def test_single_file_build(content, settings, tmp_path):
    """A single file builds relative to its own directory."""
    report = await run_build(str(content / "blog" / "post.md"), settings)
    assert report.successful == ["post.md"]
    assert (tmp_path / "dist" / "post.html").exists()


@pytest.mark.asyncio
async def test_parse_failure_reported(content, settings):
    """Unparseable frontmatter fails only that document."""
    (content / "bad.md").write_text("---\ntitle: [unclosed\n---\nbody\n", encoding="utf-8")
    report = await run_build(str(content), settings)
    assert "bad.md" in report.failed
    assert "index.md" in report.successful


@pytest.mark.asyncio
async def test_build_with_memory_storage(content, settings, tmp_path):
    """Any CacheStorage can back a build."""
    storage = MemoryStorage()
    report = await run_build(str(content), settings, storage=storage)
    assert storage.keys() == ["index/hello.js"]
    assert report.successful == ["blog/post.md", "index.md"]


@pytest.mark.asyncio
async def test_build_with_sql_storage_ships_modules(content, settings, tmp_path):
    """Loaders built over the sql backend import modules that exist on disk."""
    settings.cache_backend = "sql"
    settings.db_url = f"sqlite:///{tmp_path / 'cache.db'}"

    await run_build(str(content), settings)

    loader = (tmp_path / "cache" / "hydrate-index.js").read_text(encoding="utf-8")
    assert 'import * as block_0 from "./index/hello.js";' in loader
    assert (tmp_path / "cache" / "index" / "hello.js").read_text(encoding="utf-8") == 'export default "hello";'


@pytest.mark.asyncio
async def test_block_calling_exit_fails_open(content, settings):
    """sys.exit() in one block neither stops its page nor the rest of the build."""
    (content / "exit.md").write_text("```python :use server\nimport sys\nsys.exit(0)\n```\n", encoding="utf-8")
    report = await run_build(str(content), settings)
    assert report.successful == ["blog/post.md", "exit.md", "index.md"]


# --- clean and listing ---

@pytest.mark.asyncio
async def test_clean_document(content, settings, tmp_path):
    """Cleaning one document removes only its entries."""
    (content / "other.md").write_text("```js :name x\n1\n```\n", encoding="utf-8")
    await run_build(str(content), settings)

    removed = run_clean(settings, "index.md")

    assert removed == ["index/hello.js"]
    assert (tmp_path / "cache" / "other" / "x.js").exists()
    run_clean(settings)
    assert not (tmp_path / "cache").exists()


def test_list_blocks(content, settings):
    """Listing reports each block's mode and, for client blocks, its cache key."""
    listings = list_blocks(str(content / "index.md"), settings)
    assert [(item.block.index, item.mode, item.cache_key) for item in listings] == [
        (0, "preview", "index/hello.js"),
        (1, "server", None),
    ]


@pytest.mark.asyncio
async def test_clean_document_by_content_path(content, settings, tmp_path, monkeypatch):
    """clean accepts the same content/... path that build and blocks take."""
    monkeypatch.chdir(tmp_path)
    await run_build(str(content), settings)

    assert run_clean(settings, "content/index.md") == ["index/hello.js"]
    assert not (tmp_path / "cache" / "index" / "hello.js").exists()
