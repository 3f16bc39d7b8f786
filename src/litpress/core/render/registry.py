"""Named wrapper and mode factories, looked up by `:use` segment name"""

from typing import Optional

from litpress.core.models import ModeFactory, WrapperFactory
from litpress.core.render.formats import BUILTIN_FORMATS
from litpress.core.render.modes import BUILTIN_MODES
from litpress.core.render.wrappers import BUILTIN_WRAPPERS


class WrapperRegistry:
    """Holds wrapper factories and base-mode factories.

    One registry is built per build and passed to whatever composes pipelines;
    there is no module-level instance.
    """

    def __init__(self):
        self._wrappers: dict[str, WrapperFactory] = {}
        self._modes: dict[str, ModeFactory] = {}

    def register_wrapper(self, name: str, factory: WrapperFactory) -> None:
        self._wrappers[name] = factory

    def register_mode(self, name: str, factory: ModeFactory) -> None:
        self._modes[name] = factory

    def get(self, name: str) -> Optional[WrapperFactory]:
        return self._wrappers.get(name)

    def has(self, name: str) -> bool:
        return name in self._wrappers

    def names(self) -> list[str]:
        return sorted(self._wrappers)

    def get_mode(self, name: str) -> Optional[ModeFactory]:
        return self._modes.get(name)

    def mode_names(self) -> list[str]:
        return sorted(self._modes)


def create_default_registry() -> WrapperRegistry:
    """A fresh registry with every built-in mode, wrapper, and format."""
    registry = WrapperRegistry()
    for name, factory in BUILTIN_MODES.items():
        registry.register_mode(name, factory)
    for name, factory in {**BUILTIN_WRAPPERS, **BUILTIN_FORMATS}.items():
        registry.register_wrapper(name, factory)
    return registry
