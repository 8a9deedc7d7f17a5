"""
Tests for the runtime LLM configuration store.
"""

import asyncio

import pytest
import yaml

from monitor_api.core.config import LLMSettings, Settings, load_settings
from monitor_api.core.exceptions import ConfigPersistError
from monitor_api.core.security import mask_api_key
from monitor_api.schemas.config import LLMConfigUpdate
from monitor_api.services.llm_config import LLMConfigStore, ReadWriteLock


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "api-server.yaml"


@pytest.fixture
def store(config_path):
    settings = Settings(llm=LLMSettings(enabled=False, endpoint="http://old/v1", api_key="sk-1234567890", model="m1"))
    return LLMConfigStore(settings, config_path)


@pytest.mark.parametrize(
    "value, expected",
    [("", ""), ("abc", "****"), ("abcd", "****"), ("sk-1234567890", "****7890")],
)
def test_mask_api_key(value, expected):
    assert mask_api_key(value) == expected


class TestLLMConfigStore:
    async def test_get_masks_key(self, store):
        config = await store.get()

        assert config.api_key == "****7890"
        assert (await store.snapshot()).api_key == "sk-1234567890"

    async def test_partial_update_keeps_other_fields(self, store):
        updated = await store.update(LLMConfigUpdate(enabled=True))

        assert updated.enabled is True
        assert updated.endpoint == "http://old/v1"
        assert (await store.snapshot()).model == "m1"

    @pytest.mark.parametrize("api_key", ["", "****7890", "****"])
    async def test_masked_or_empty_key_is_ignored(self, store, api_key):
        await store.update(LLMConfigUpdate(api_key=api_key, model="m2"))

        snapshot = await store.snapshot()
        assert snapshot.api_key == "sk-1234567890"
        assert snapshot.model == "m2"

    async def test_new_key_replaces_old(self, store):
        updated = await store.update(LLMConfigUpdate(api_key="sk-new-key-0001"))

        assert updated.api_key == "****0001"
        assert (await store.snapshot()).api_key == "sk-new-key-0001"

    async def test_update_persists_changed_llm_keys(self, store, config_path):
        await store.update(LLMConfigUpdate(enabled=True, timeout=30))

        document = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        assert document == {"llm": {"enabled": True, "timeout": 30}}

        await store.update(LLMConfigUpdate(model="m2"))

        document = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        assert document["llm"] == {"enabled": True, "model": "m2", "timeout": 30}
        assert load_settings(config_path).llm.model == "m2"

    async def test_update_keeps_rest_of_document(self, config_path, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "env-only-secret")
        monkeypatch.setenv("JWT_SECRET", "env-only-jwt")
        config_path.write_text(
            yaml.safe_dump({
                "server": {"port": 9090},
                "database": {"host": "db", "max_open_conns": 50, "max_idle_conns": 10},
                "llm": {"endpoint": "http://old/v1", "api_key": "sk-file-key-1234", "extra_header": "x"},
            }),
            encoding="utf-8",
        )
        store = LLMConfigStore(load_settings(config_path), config_path)

        await store.update(LLMConfigUpdate(model="m2"))

        text = config_path.read_text(encoding="utf-8")
        document = yaml.safe_load(text)
        assert "env-only-secret" not in text
        assert "env-only-jwt" not in text
        assert document["server"] == {"port": 9090}
        assert document["database"] == {"host": "db", "max_open_conns": 50, "max_idle_conns": 10}
        assert document["llm"] == {
            "endpoint": "http://old/v1",
            "api_key": "sk-file-key-1234",
            "extra_header": "x",
            "model": "m2",
        }

    async def test_failed_save_is_retried_on_next_update(self, tmp_path):
        blocked = tmp_path / "blocked"
        blocked.mkdir()
        store = LLMConfigStore(Settings(llm=LLMSettings(model="m1")), blocked)

        with pytest.raises(ConfigPersistError):
            await store.update(LLMConfigUpdate(model="m2"))

        store._path = tmp_path / "api-server.yaml"
        await store.update(LLMConfigUpdate(enabled=True))

        document = yaml.safe_load(store.path.read_text(encoding="utf-8"))
        assert document["llm"] == {"enabled": True, "model": "m2"}

    async def test_persist_failure_keeps_memory_update(self, tmp_path):
        # A directory cannot be opened for writing
        store = LLMConfigStore(Settings(llm=LLMSettings(model="m1")), tmp_path)

        with pytest.raises(ConfigPersistError) as exc_info:
            await store.update(LLMConfigUpdate(model="m2"))

        assert exc_info.value.message.startswith("config updated in memory but failed to save to file")
        assert (await store.snapshot()).model == "m2"

    async def test_listeners_receive_new_config(self, store):
        received = []

        async def listener(config):
            received.append(config.endpoint)

        store.subscribe(listener)
        await store.update(LLMConfigUpdate(endpoint="http://new/v1"))

        assert received == ["http://new/v1"]


class TestReadWriteLock:
    async def test_readers_share_the_lock(self):
        lock = ReadWriteLock()
        inside = 0
        peak = 0

        async def reader():
            nonlocal inside, peak
            async with lock.read():
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(*(reader() for _ in range(5)))

        assert peak == 5

    async def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []

        async def writer():
            async with lock.write():
                events.append("write-start")
                await asyncio.sleep(0.01)
                events.append("write-end")

        async def reader():
            await asyncio.sleep(0)
            async with lock.read():
                events.append("read")

        await asyncio.gather(writer(), reader())

        assert events == ["write-start", "write-end", "read"]
