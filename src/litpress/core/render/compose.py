"""Compose render pipelines from `:use` segments.

Wrappers apply right to left: `[A, B, C]` over `base` yields `A(B(C(base)))`,
so the leftmost wrapper is outermost. Unknown names are skipped and reported
through `on_unknown`; they never fail composition.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from litpress.core.models import PipeSegment, RenderFunction, Wrapper
from litpress.core.params import parse_pipe
from litpress.core.render.modes import default_render
from litpress.core.render.registry import WrapperRegistry


logger = logging.getLogger(__name__)

ExternalResolver = Callable[[PipeSegment], Awaitable[Optional[Wrapper]]]
UnknownHook = Callable[[str], Any]


def _unknown(name: str, on_unknown: Optional[UnknownHook]) -> None:
    logger.warning("Unknown wrapper '%s' skipped", name)
    if on_unknown:
        on_unknown(name)


def _local_wrapper(segment: PipeSegment, registry: WrapperRegistry) -> Optional[Wrapper]:
    factory = registry.get(segment.name)
    return factory(segment.config) if factory else None


async def compose_wrappers(
    segments: list[PipeSegment],
    *,
    registry: WrapperRegistry,
    base_render: RenderFunction = default_render,
    resolve_external: Optional[ExternalResolver] = None,
    on_unknown: Optional[UnknownHook] = None,
    ) -> RenderFunction:
    """Fold wrapper segments over base_render, resolving external references."""
    render = base_render
    for segment in reversed(segments):
        wrapper = None
        if segment.is_external:
            if resolve_external:
                try:
                    wrapper = await resolve_external(segment)
                except Exception as e:
                    logger.warning("Failed to resolve external wrapper '%s': %s", segment.name, e)
                    wrapper = None
        else:
            wrapper = _local_wrapper(segment, registry)

        if wrapper is None:
            _unknown(segment.name, on_unknown)
            continue
        render = wrapper(render)
    return render


def compose_wrappers_sync(
    segments: list[PipeSegment],
    *,
    registry: WrapperRegistry,
    base_render: RenderFunction = default_render,
    on_unknown: Optional[UnknownHook] = None,
    ) -> RenderFunction:
    """Synchronous fold; external references are treated as unknown."""
    render = base_render
    for segment in reversed(segments):
        wrapper = None if segment.is_external else _local_wrapper(segment, registry)
        if wrapper is None:
            _unknown(segment.name, on_unknown)
            continue
        render = wrapper(render)
    return render


def resolve_mode(segment: Optional[PipeSegment], registry: WrapperRegistry) -> RenderFunction:
    """Base render function for a mode segment; unknown modes use default_render."""
    if segment is None:
        return default_render
    factory = registry.get_mode(segment.name)
    return factory(segment.config) if factory else default_render


async def compose_pipeline(
    use: Optional[str],
    *,
    registry: WrapperRegistry,
    resolve_external: Optional[ExternalResolver] = None,
    on_unknown: Optional[UnknownHook] = None,
    exclude: tuple[str, ...] = (),
    ) -> RenderFunction:
    """Build the full render function for a `:use` value.

    Segment names in `exclude` are dropped before composition.
    """
    segments = parse_pipe(use)
    mode = segments[0] if segments else None
    wrappers = [s for s in segments[1:] if s.name not in exclude]
    return await compose_wrappers(
        wrappers,
        registry=registry,
        base_render=resolve_mode(mode, registry),
        resolve_external=resolve_external,
        on_unknown=on_unknown,
    )


def compose_pipeline_sync(
    use: Optional[str],
    *,
    registry: WrapperRegistry,
    on_unknown: Optional[UnknownHook] = None,
    exclude: tuple[str, ...] = (),
    ) -> RenderFunction:
    segments = parse_pipe(use)
    mode = segments[0] if segments else None
    wrappers = [s for s in segments[1:] if s.name not in exclude]
    return compose_wrappers_sync(
        wrappers,
        registry=registry,
        base_render=resolve_mode(mode, registry),
        on_unknown=on_unknown,
    )
