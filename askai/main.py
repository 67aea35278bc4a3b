"""Application wiring: build a ready-to-use ChatGateway from settings."""

import logging

from askai.core.config import Settings, settings, validate_settings
from askai.core.encryption import CredentialVault
from askai.db.session import create_engine
from askai.gateway.gateway import ChatGateway
from askai.gateway.rate_limiter import AdmissionController
from askai.gateway.registry import ProviderRegistry
from askai.storage.settings_store import SqlSettingsStore

logger = logging.getLogger(__name__)


async def create_gateway(config: Settings | None = None) -> ChatGateway:
    """Validate config, open the settings database and assemble the gateway.

    Call ``setup_logging()`` first. Close with ``gateway.aclose()``.
    """
    config = config or settings
    for problem in validate_settings(config):
        logger.warning("Configuration: %s", problem)

    vault = CredentialVault(config.encryption_seed, config.data_dir)

    engine = create_engine(config.effective_database_url, echo=config.database_echo)
    store = SqlSettingsStore(engine)
    await store.create_tables()

    gateway = ChatGateway(
        store=store,
        vault=vault,
        registry=ProviderRegistry(timeout=config.provider_timeout_seconds),
        admission=AdmissionController(config.rate_limit_requests, config.rate_limit_window_seconds),
        config=config,
    )
    logger.info(
        "AI chat gateway ready (key mode: %s, providers: %s)",
        config.key_mode,
        ", ".join(sorted(p.value for p in gateway.allowed_providers)),
    )
    return gateway

