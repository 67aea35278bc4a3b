from unittest.mock import AsyncMock

import httpx
import pytest

from askai.core.config import Settings
from askai.core.encryption import CredentialVault
from askai.db.session import create_engine
from askai.gateway.gateway import ChatGateway
from askai.gateway.rate_limiter import AdmissionController
from askai.gateway.registry import ProviderRegistry
from askai.gateway.types import NormalizedResponse, Provider
from askai.storage.settings_store import SqlSettingsStore

TEST_SEED = "test-seed-that-is-long-enough-for-pbkdf2"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_httpx_response(status_code: int, json_data: dict | None = None, text: str = "") -> httpx.Response:
    """Create a proper httpx.Response with request set."""
    request = httpx.Request("POST", "https://example.com")
    if json_data is not None:
        return httpx.Response(status_code, json=json_data, request=request)
    return httpx.Response(status_code, text=text, request=request)


def mock_async_client(mock_client_cls, response=None, side_effect=None) -> AsyncMock:
    """Wire a patched ``httpx.AsyncClient`` class to return ``response`` from ``post``."""
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return mock_client


def make_config(tmp_path, **overrides) -> Settings:
    values = {
        "encryption_seed": TEST_SEED,
        "data_dir": str(tmp_path / "data"),
        "database_url": "",
        "rate_limit_requests": 10,
        "rate_limit_window_seconds": 60.0,
        "allowed_providers": "",
        "key_mode": "user",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def config(tmp_path) -> Settings:
    return make_config(tmp_path)


@pytest.fixture
def vault(config) -> CredentialVault:
    return CredentialVault(config.encryption_seed, config.data_dir)


@pytest.fixture
async def store(config):
    """Settings store on a fresh SQLite file under tmp_path."""
    engine = create_engine(config.effective_database_url)
    settings_store = SqlSettingsStore(engine)
    await settings_store.create_tables()
    yield settings_store
    await settings_store.aclose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_adapters() -> dict[Provider, AsyncMock]:
    """One AsyncMock adapter per provider, answering "Hello world"."""
    adapters = {}
    for provider in Provider:
        adapter = AsyncMock()
        adapter.provider = provider
        adapter.chat.return_value = NormalizedResponse(
            text="Hello world", prompt_tokens=10, completion_tokens=20, finish_reason="stop"
        )
        adapters[provider] = adapter
    return adapters


def build_gateway(config, store, vault, clock, adapters) -> ChatGateway:
    return ChatGateway(
        store=store,
        vault=vault,
        registry=ProviderRegistry(adapters=adapters),
        admission=AdmissionController(config.rate_limit_requests, config.rate_limit_window_seconds, clock=clock),
        config=config,
    )


@pytest.fixture
def gateway(config, store, vault, clock, fake_adapters) -> ChatGateway:
    return build_gateway(config, store, vault, clock, fake_adapters)
