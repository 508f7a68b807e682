"""ModuleRegistry: discovery, lazy loading and invocation of modules.

Responsibilities:
 - List module ids from source files in the modules directory
   (re-read on every call, filtered by extension)
 - Load a module on first access and cache the immutable value
   (double-checked locking so concurrent first loads register once)
 - Invoke commands, turning every module-side failure into an
   ``{"error": ...}`` result; module failures never propagate
"""
from __future__ import annotations

import asyncio
import contextvars
import importlib.util
import logging
import re
import sys
import time
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterable

from pydantic import ValidationError

from core.errors import (
    ArrError,
    CommandNotFound,
    HandlerError,
    ModuleDirectoryError,
    ModuleLoadError,
    ModuleNotFound,
    map_exception,
)
from core.events import emit, ModuleInvoked, ModuleLoaded, ModuleLoadFailed
from .manifest import Module, ModuleManifest, build_module

logger = logging.getLogger("arr.modules")

_QUOTED_QUERY_RE = re.compile(r"""query\s*=\s*["']([^"']+)["']""")
_BARE_QUERY_RE = re.compile(r"query\s*=\s*(\S+)")

# Loaded sources are registered under this prefix in sys.modules
_IMPORT_PREFIX = "_arr_modules"

_CURRENT_REGISTRY: contextvars.ContextVar[ModuleRegistry | None] = (
    contextvars.ContextVar("arr_current_registry", default=None)
)


def current_registry() -> ModuleRegistry | None:
    """Registry running the command handler being executed, if any."""
    return _CURRENT_REGISTRY.get()


def normalize_parameters(parameters: str | None) -> str:
    """Reduce ``query="x"`` / ``query=x`` parameter forms to ``x``."""
    if not parameters:
        return ""
    if "query=" in parameters.replace(" ", ""):
        m = _QUOTED_QUERY_RE.search(parameters)
        if m:
            return m.group(1)
        m = _BARE_QUERY_RE.search(parameters)
        if m:
            return m.group(1)
    return parameters


class ModuleRegistry:
    def __init__(
        self,
        path: str | Path,
        extensions: Iterable[str] = (".py",),
    ) -> None:
        self._path = Path(path)
        self._extensions = tuple(extensions)
        self._cache: Dict[str, Module] = {}
        self._loaded: list[str] = []
        self._lock = RLock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def loaded(self) -> list[str]:
        """Ids loaded so far (introspection only)."""
        with self._lock:
            return list(self._loaded)

    # --- Discovery -----------------------------------------------------------
    def list(self) -> list[str]:
        try:
            entries = list(self._path.iterdir())
        except OSError as e:
            raise ModuleDirectoryError(
                f"Cannot read modules directory {self._path}: {e}"
            ) from e
        ids = {
            p.stem
            for p in entries
            if p.is_file()
            and p.suffix in self._extensions
            and not p.name.startswith("_")
        }
        return sorted(ids)

    def _source_for(self, module_id: str) -> Path | None:
        for ext in self._extensions:
            candidate = self._path / f"{module_id}{ext}"
            if candidate.is_file():
                return candidate
        return None

    # --- Loading -------------------------------------------------------------
    def load(self, module_id: str) -> Module:
        mod = self._cache.get(module_id)
        if mod is not None:
            return mod
        with self._lock:
            mod = self._cache.get(module_id)
            if mod is not None:
                return mod
            if module_id not in self.list():
                raise ModuleNotFound(module_id)
            mod = self._load_source(module_id)
            self._cache[module_id] = mod
            if module_id not in self._loaded:
                self._loaded.append(module_id)
            return mod

    def _load_source(self, module_id: str) -> Module:
        source = self._source_for(module_id)
        if source is None:
            raise ModuleNotFound(module_id)
        start = time.perf_counter()
        try:
            declared = _exec_source(module_id, source)
            try:
                manifest = ModuleManifest.model_validate(declared)
            except ValidationError as e:
                raise ModuleLoadError(
                    f'Invalid module "{module_id}": {e}'
                ) from e
        except ModuleLoadError as e:
            logger.error("failed to load module %s: %s", module_id, e)
            emit(
                ModuleLoadFailed(
                    module_id=module_id,
                    error_type=e.error_type,
                    message=e.message,
                )
            )
            raise
        if manifest.id and manifest.id != module_id:
            logger.warning(
                "module %s declares id %r; using file name",
                module_id,
                manifest.id,
            )
        mod = build_module(module_id, manifest, source)
        load_ms = int((time.perf_counter() - start) * 1000)
        logger.debug("loaded module %s (%d ms)", module_id, load_ms)
        emit(
            ModuleLoaded(
                module_id=module_id,
                name=mod.name,
                commands=len(mod.commands),
                load_ms=load_ms,
            )
        )
        return mod

    def reload(self, module_id: str) -> Module:
        with self._lock:
            self._cache.pop(module_id, None)
            return self.load(module_id)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._loaded.clear()

    def load_all(self) -> Dict[str, str]:
        """Warm the cache; returns ``{id: error message}`` for failures."""
        failures: Dict[str, str] = {}
        for module_id in self.list():
            try:
                self.load(module_id)
            except ArrError as e:
                failures[module_id] = e.message
        return failures

    # --- Introspection -------------------------------------------------------
    def describe(self, module_id: str) -> dict:
        return self.load(module_id).describe()

    def describe_all(self) -> list[dict]:
        out: list[dict] = []
        for module_id in self.list():
            try:
                out.append(self.describe(module_id))
            except ArrError as e:
                out.append(
                    {
                        "id": module_id,
                        "name": module_id,
                        "capabilities": [],
                        "commands": {},
                        "error": e.message,
                    }
                )
        return out

    # --- Invocation ----------------------------------------------------------
    async def invoke(
        self, module_id: str, command_name: str, parameters: str | None = ""
    ) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            result = await self._invoke(module_id, command_name, parameters)
        except ArrError as e:
            self._record(module_id, command_name, start, e)
            return {"error": e.message}
        self._record(module_id, command_name, start, None)
        return {"success": True, "result": result}

    async def _invoke(
        self, module_id: str, command_name: str, parameters: str | None
    ) -> Any:
        mod = self.load(module_id)
        command = mod.commands.get(command_name)
        if command is None:
            raise CommandNotFound(module_id, command_name)
        params = normalize_parameters(parameters)
        args = (params,) if command.takes_parameters else ()
        # asyncio.to_thread copies the context, so sync handlers see it too
        token = _CURRENT_REGISTRY.set(self)
        try:
            if command.is_async:
                return await command.handler(*args)
            result = await asyncio.to_thread(command.handler, *args)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        except Exception as e:  # noqa: BLE001
            logger.exception(
                "handler %s.%s failed", module_id, command_name
            )
            raise HandlerError(str(e) or e.__class__.__name__) from e
        finally:
            _CURRENT_REGISTRY.reset(token)

    def _record(
        self,
        module_id: str,
        command_name: str,
        start: float,
        error: ArrError | None,
    ) -> None:
        latency_ms = int((time.perf_counter() - start) * 1000)
        if error is not None:
            logger.warning(
                "module %s.%s failed: %s", module_id, command_name, error
            )
        emit(
            ModuleInvoked(
                module_id=module_id,
                command=command_name,
                status="ok" if error is None else "error",
                latency_ms=latency_ms,
                error_type=(
                    map_exception(error, "module.invoke") if error else None
                ),
                message=error.message if error else None,
            )
        )


def _exec_source(module_id: str, source: Path) -> Any:
    """Import a module source file and return its ``MODULE`` declaration."""
    qualified = f"{_IMPORT_PREFIX}.{module_id}"
    spec = importlib.util.spec_from_file_location(qualified, source)
    if spec is None or spec.loader is None:
        raise ModuleLoadError(f'Cannot import module "{module_id}"')
    code = importlib.util.module_from_spec(spec)
    sys.modules[qualified] = code
    try:
        spec.loader.exec_module(code)
    except Exception as e:  # noqa: BLE001
        sys.modules.pop(qualified, None)
        raise ModuleLoadError(
            f'Module "{module_id}" failed to import: {e}'
        ) from e
    declared = getattr(code, "MODULE", None)
    if not isinstance(declared, dict):
        sys.modules.pop(qualified, None)
        raise ModuleLoadError(
            f'Module "{module_id}" does not define a MODULE mapping'
        )
    if "commands" not in declared:
        sys.modules.pop(qualified, None)
        raise ModuleLoadError(
            f'Module "{module_id}" is missing its commands mapping'
        )
    return declared


__all__ = ["ModuleRegistry", "current_registry", "normalize_parameters"]
