"""Settings store — per-identity provider settings with upsert semantics.

The orchestrator talks to the ``SettingsStore`` protocol only. Every call
round-trips the database; nothing is cached, so concurrent writers resolve
as last-write-wins here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from askai.db.session import create_session_factory, create_tables
from askai.gateway.types import CredentialScope, Provider, UserSettings
from askai.models.user_setting import UserActiveProvider, UserSetting

logger = logging.getLogger(__name__)

SETTING_API_KEY = "encrypted_api_key"
SETTING_MODEL = "model"

# Identity key of the single shared-scope record
SHARED_IDENTITY = "*"


class SettingsStore(Protocol):
    async def load(self, identity: str, scope: CredentialScope = CredentialScope.USER) -> UserSettings: ...

    async def set_credential(
        self,
        identity: str,
        provider: Provider,
        encrypted_token: str,
        scope: CredentialScope = CredentialScope.USER,
    ) -> None: ...

    async def set_model(
        self,
        identity: str,
        provider: Provider,
        model: str,
        scope: CredentialScope = CredentialScope.USER,
    ) -> None: ...

    async def set_active_provider(
        self,
        identity: str,
        provider: Provider,
        scope: CredentialScope = CredentialScope.USER,
    ) -> None: ...


def _owner(identity: str, scope: CredentialScope) -> str:
    return SHARED_IDENTITY if scope == CredentialScope.SHARED else identity


class SqlSettingsStore:
    """SettingsStore backed by SQLAlchemy (SQLite via aiosqlite, or PostgreSQL)."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory: async_sessionmaker[AsyncSession] = create_session_factory(engine)

    async def create_tables(self) -> None:
        await create_tables(self.engine)

    async def aclose(self) -> None:
        await self.engine.dispose()

    def _insert(self):
        if self.engine.dialect.name == "postgresql":
            return pg_insert
        return sqlite_insert

    async def load(self, identity: str, scope: CredentialScope = CredentialScope.USER) -> UserSettings:
        owner = _owner(identity, scope)
        settings = UserSettings(identity=identity, scope=scope)

        async with self._session_factory() as session:
            active = await session.scalar(
                select(UserActiveProvider.provider).where(
                    UserActiveProvider.scope == scope.value,
                    UserActiveProvider.identity == owner,
                )
            )
            provider = Provider.from_id(active)
            if provider is not None:
                settings.active_provider = provider

            rows = await session.execute(
                select(UserSetting.provider, UserSetting.setting_key, UserSetting.setting_value).where(
                    UserSetting.scope == scope.value,
                    UserSetting.identity == owner,
                )
            )
            for provider_id, key, value in rows:
                provider = Provider.from_id(provider_id)
                if provider is None:
                    continue
                if key == SETTING_API_KEY:
                    settings.encrypted_keys[provider] = value
                elif key == SETTING_MODEL:
                    settings.models[provider] = value

        return settings

    async def set_credential(
        self,
        identity: str,
        provider: Provider,
        encrypted_token: str,
        scope: CredentialScope = CredentialScope.USER,
    ) -> None:
        await self._upsert_setting(identity, scope, provider, SETTING_API_KEY, encrypted_token)

    async def set_model(
        self,
        identity: str,
        provider: Provider,
        model: str,
        scope: CredentialScope = CredentialScope.USER,
    ) -> None:
        await self._upsert_setting(identity, scope, provider, SETTING_MODEL, model)

    async def set_active_provider(
        self,
        identity: str,
        provider: Provider,
        scope: CredentialScope = CredentialScope.USER,
    ) -> None:
        now = datetime.now(timezone.utc)
        stmt = (
            self._insert()(UserActiveProvider)
            .values(scope=scope.value, identity=_owner(identity, scope), provider=provider.value, updated_at=now)
            .on_conflict_do_update(
                index_elements=["scope", "identity"],
                set_={"provider": provider.value, "updated_at": now},
            )
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def _upsert_setting(
        self,
        identity: str,
        scope: CredentialScope,
        provider: Provider,
        key: str,
        value: str,
    ) -> None:
        now = datetime.now(timezone.utc)
        stmt = (
            self._insert()(UserSetting)
            .values(
                scope=scope.value,
                identity=_owner(identity, scope),
                provider=provider.value,
                setting_key=key,
                setting_value=value,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["scope", "identity", "provider", "setting_key"],
                set_={"setting_value": value, "updated_at": now},
            )
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        logger.debug("Stored %s for %s/%s (%s)", key, scope.value, provider.value, identity)
