"""
Runtime LLM configuration.

The LLM block of the configuration document can be changed while the
service runs. Many requests read it concurrently; updates are serialized,
swap the block in one assignment and then write the changed keys back to
the YAML document.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Set

import structlog

from monitor_api.core.config import LLMSettings, Settings, resolve_config_path, save_llm_block, settings
from monitor_api.core.exceptions import ConfigPersistError
from monitor_api.core.security import is_masked, mask_api_key
from monitor_api.schemas.config import LLMConfigUpdate

logger = structlog.get_logger(__name__)

ConfigListener = Callable[[LLMSettings], Awaitable[None]]


class ReadWriteLock:
    """Asyncio readers/writer lock: any number of readers or a single writer."""

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


def masked(config: LLMSettings) -> LLMSettings:
    """Copy of ``config`` safe to show to operators."""
    return config.model_copy(update={"api_key": mask_api_key(config.api_key)})


class LLMConfigStore:
    """Holder of the live LLM block and the document it is persisted to."""

    def __init__(self, app_settings: Settings, config_path: Path):
        self._settings = app_settings
        self._path = Path(config_path)
        self._lock = ReadWriteLock()
        self._listeners: List[ConfigListener] = []
        # Every field changed at runtime; rewritten on each save
        self._dirty: Set[str] = set()

    @property
    def path(self) -> Path:
        return self._path

    def subscribe(self, listener: ConfigListener) -> None:
        """Register a coroutine called with the new block after every update."""
        self._listeners.append(listener)

    async def snapshot(self) -> LLMSettings:
        """Unmasked copy for the LLM client."""
        async with self._lock.read():
            return self._settings.llm.model_copy(deep=True)

    async def get(self) -> LLMSettings:
        """Masked copy for display."""
        return masked(await self.snapshot())

    async def update(self, patch: LLMConfigUpdate) -> LLMSettings:
        """
        Apply a partial update and persist it to the document.

        An ``api_key`` that is empty or still masked is ignored, so a client
        can send back the masked value it was shown.

        Returns:
            The new block, masked

        Raises:
            ConfigPersistError: The file write failed; the in-memory update stands
        """
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        api_key = changes.get("api_key")
        if api_key is not None and (not api_key or is_masked(api_key)):
            changes.pop("api_key")

        async with self._lock.write():
            updated = self._settings.llm.model_copy(update=changes)
            self._settings.llm = updated
            self._dirty.update(changes)

            for listener in self._listeners:
                await listener(updated)

            logger.info(
                "LLM config updated",
                fields=sorted(changes),
                enabled=updated.enabled,
                endpoint=updated.endpoint,
                model=updated.model,
            )

            try:
                await asyncio.to_thread(save_llm_block, updated, self._path, sorted(self._dirty))
            except OSError as e:
                logger.error("Failed to persist config", path=str(self._path), error=str(e))
                raise ConfigPersistError(
                    f"config updated in memory but failed to save to file: {e}"
                ) from e

        return masked(updated)


_config_store: Optional[LLMConfigStore] = None


def get_llm_config_store() -> LLMConfigStore:
    """Get the process-wide LLM config store."""
    global _config_store

    if _config_store is None:
        _config_store = LLMConfigStore(settings, resolve_config_path())
    return _config_store
