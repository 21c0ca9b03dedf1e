"""Kid Rewards web API package.

``create_app`` is resolved lazily so ``kidrewards.webapp.config`` stays
importable without FastAPI installed.
"""
from __future__ import annotations

from importlib import import_module
from types import ModuleType
from typing import Any, List

from . import config as _config

_IMPL_MODULE: ModuleType | None = None

_WEB_MODULES = {"fastapi", "starlette", "pydantic"}

config = _config
__all__: List[str] = ["config", "create_app", "load_settings", "Settings"]

load_settings = _config.load_settings
Settings = _config.Settings


def _load_impl() -> ModuleType:
    global _IMPL_MODULE
    if _IMPL_MODULE is not None:
        return _IMPL_MODULE
    try:
        module = import_module(".application", __name__)
    except ModuleNotFoundError as exc:
        if exc.name in _WEB_MODULES:
            raise RuntimeError(
                "kidrewards.webapp requires FastAPI. Install the project with `pip install -e .`."
            ) from exc
        raise
    _IMPL_MODULE = module
    return module


def __getattr__(name: str) -> Any:
    module = _load_impl()
    try:
        return getattr(module, name)
    except AttributeError:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}") from None


def __dir__() -> List[str]:
    names = set(globals()) | set(__all__)
    try:
        module = _load_impl()
    except RuntimeError:
        return sorted(names)
    return sorted(names | set(dir(module)))
