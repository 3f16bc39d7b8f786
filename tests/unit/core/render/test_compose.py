"""Unit tests for core/render/compose.py and core/render/registry.py"""

import pytest

from litpress.core.params import parse_pipe
from litpress.core.render.compose import (
    compose_pipeline,
    compose_pipeline_sync,
    compose_wrappers,
    compose_wrappers_sync,
)
from litpress.core.render.registry import WrapperRegistry, create_default_registry


def _tagging(tag):
    """Wrapper factory whose output is tag(inner)."""
    def factory(config=None):
        def wrap(render):
            return lambda value, ctx: f"{tag}({render(value, ctx)})"
        return wrap
    return factory


def _base(value, ctx):
    return "base"


@pytest.fixture(name="abc_registry")
def abc_registry_fixture():
    registry = WrapperRegistry()
    for tag in "ABC":
        registry.register_wrapper(tag, _tagging(tag))
    return registry


# --- registry ---

def test_default_registry_has_builtins():
    """create_default_registry registers every built-in wrapper, format, and mode."""
    registry = create_default_registry()
    for name in (
        "withSourceCode", "withErrorBoundary", "withContainer", "withCollapse", "withTabs", "withConsole",
        "json", "yaml", "csv", "html",
    ):
        assert registry.has(name)
    assert registry.mode_names() == ["preview", "raw", "server", "silent", "sourceOnly"]


def test_default_registries_are_independent():
    """Registering on one registry does not leak into another."""
    first = create_default_registry()
    first.register_wrapper("custom", _tagging("X"))
    assert not create_default_registry().has("custom")


def test_registry_get_unknown_is_none():
    """Unknown names resolve to None rather than raising."""
    registry = WrapperRegistry()
    assert registry.get("nope") is None
    assert registry.get_mode("nope") is None
    assert registry.names() == []


# --- composition order ---

def test_compose_sync_right_to_left(abc_registry, block_ctx):
    """[A, B, C] composes to A(B(C(base)))."""
    render = compose_wrappers_sync(parse_pipe("A | B | C"), registry=abc_registry, base_render=_base)
    assert render(None, block_ctx) == "A(B(C(base)))"


@pytest.mark.asyncio
async def test_compose_async_right_to_left(abc_registry, block_ctx):
    """The async fold applies the same order."""
    render = await compose_wrappers(parse_pipe("A | B | C"), registry=abc_registry, base_render=_base)
    assert render(None, block_ctx) == "A(B(C(base)))"


def test_compose_empty_is_base(abc_registry, block_ctx):
    """No wrappers returns the base render function itself."""
    assert compose_wrappers_sync([], registry=abc_registry, base_render=_base) is _base


# --- unknown wrappers ---

def test_unknown_wrapper_skipped_and_reported(abc_registry, block_ctx):
    """Unknown names are skipped and on_unknown fires once per miss."""
    missed = []
    render = compose_wrappers_sync(
        parse_pipe("A | missing | C | gone"),
        registry=abc_registry, base_render=_base, on_unknown=missed.append,
    )
    assert render(None, block_ctx) == "A(C(base))"
    assert missed == ["gone", "missing"]


def test_unknown_wrapper_without_hook(abc_registry, block_ctx):
    """Composition succeeds without an on_unknown hook."""
    render = compose_wrappers_sync(parse_pipe("missing | B"), registry=abc_registry, base_render=_base)
    assert render(None, block_ctx) == "B(base)"


# --- external references ---

@pytest.mark.asyncio
async def test_external_resolved_by_resolver(abc_registry, block_ctx):
    """External segments are resolved by the injected async resolver."""
    seen = []

    async def resolver(segment):
        seen.append((segment.name, segment.block_name))
        return _tagging("EXT")(segment.config)

    render = await compose_wrappers(
        parse_pipe("A | ./lib.md#shout"),
        registry=abc_registry, base_render=_base, resolve_external=resolver,
    )
    assert render(None, block_ctx) == "A(EXT(base))"
    assert seen == [("./lib.md", "shout")]


@pytest.mark.asyncio
async def test_external_failures_count_as_unknown(abc_registry, block_ctx):
    """A None result, a raising resolver, or no resolver all skip the segment."""
    async def returns_none(segment):
        return None

    async def raises(segment):
        raise RuntimeError("boom")

    for resolver in (returns_none, raises, None):
        missed = []
        render = await compose_wrappers(
            parse_pipe("A | ./lib.md#shout"),
            registry=abc_registry, base_render=_base,
            resolve_external=resolver, on_unknown=missed.append,
        )
        assert render(None, block_ctx) == "A(base)"
        assert missed == ["./lib.md"]


def test_sync_skips_external(abc_registry, block_ctx):
    """The synchronous fold treats external segments as unknown."""
    missed = []
    render = compose_wrappers_sync(
        parse_pipe("./lib.md#shout | B"),
        registry=abc_registry, base_render=_base, on_unknown=missed.append,
    )
    assert render(None, block_ctx) == "B(base)"
    assert missed == ["./lib.md"]


# --- pipelines ---

def test_pipeline_unknown_mode_falls_back_to_default(registry, block_ctx):
    """An unregistered mode renders with default_render."""
    render = compose_pipeline_sync("mystery", registry=registry)
    assert render({"a": 1}, block_ctx) == '{\n  "a": 1\n}'


def test_pipeline_no_use_is_default(registry, block_ctx):
    """No :use at all still yields a working render function."""
    render = compose_pipeline_sync(None, registry=registry)
    assert render("text", block_ctx) == "text"


def test_pipeline_raw_mode(registry, block_ctx):
    """raw renders str(value)."""
    render = compose_pipeline_sync("raw", registry=registry)
    assert render([1, 2], block_ctx) == "[1, 2]"


@pytest.mark.asyncio
async def test_pipeline_exclude(registry, block_ctx):
    """Excluded segment names are dropped before composition."""
    render = await compose_pipeline("server | withCollapse", registry=registry, exclude=("withCollapse",))
    assert render("x", block_ctx) == "x"


def test_pipeline_errors_propagate(block_ctx):
    """Without withErrorBoundary, errors raised by render functions propagate."""
    registry = create_default_registry()

    def failing(config=None):
        def render(value, ctx):
            raise ValueError("bad value")
        return render

    registry.register_mode("failing", failing)
    render = compose_pipeline_sync("failing | withCollapse", registry=registry)
    with pytest.raises(ValueError, match="bad value"):
        render(1, block_ctx)


def test_pipeline_error_boundary_catches(block_ctx):
    """withErrorBoundary turns an inner exception into fallback markup."""
    registry = create_default_registry()

    def failing(config=None):
        def render(value, ctx):
            raise ValueError("bad <value>")
        return render

    registry.register_mode("failing", failing)
    render = compose_pipeline_sync("failing | withErrorBoundary", registry=registry)
    html = render(1, block_ctx)
    assert 'data-error="true"' in html
    assert "bad &lt;value&gt;" in html
