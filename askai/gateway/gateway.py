"""Chat Gateway — the per-request orchestration pipeline.

Main entry point for the command layer:
  1. Validates the message (interactive caller, length)
  2. Checks the per-identity Admission Controller
  3. Loads settings and decrypts the active provider's API key
  4. Dispatches through the Provider Registry to the vendor adapter
  5. Returns exactly one Outcome, with a sanitized reason on failure

Steps 1-2 run synchronously on the caller's event loop before the first
suspension point. Steps 3-5 await the settings store and the network.

Usage:
    gateway = ChatGateway(store=store, vault=vault, registry=registry, admission=admission)

    outcome = await gateway.submit_message("player-uuid", "Hello!")

    # Or fire-and-forget, delivered back on the calling loop:
    gateway.post_message("player-uuid", "Hello!", deliver=send_to_chat)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from askai.core.config import Settings, settings
from askai.core.encryption import CredentialVault
from askai.core.exceptions import (
    AskAIError,
    CredentialMissing,
    DecryptionFailed,
    ProviderError,
    RateLimited,
    ValidationError,
)
from askai.core.redaction import redact
from askai.gateway.rate_limiter import AdmissionController
from askai.gateway.registry import ProviderRegistry
from askai.gateway.types import (
    ChatMessage,
    ChatResult,
    CredentialScope,
    NormalizedRequest,
    Outcome,
    Provider,
    Role,
    StatusView,
    UserSettings,
)
from askai.storage.settings_store import SettingsStore

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Request failed. Please try again later."
MAX_MODEL_ID_LENGTH = 100

Deliver = Callable[[Outcome], None]


class ChatGateway:
    """Orchestrates validation, admission, credential resolution and dispatch.

    Holds no per-request state: settings are loaded from the store on every
    call, and the vault, registry and admission controller are shared.
    """

    def __init__(
        self,
        store: SettingsStore,
        vault: CredentialVault,
        registry: ProviderRegistry,
        admission: AdmissionController,
        config: Settings | None = None,
    ):
        self.store = store
        self.vault = vault
        self.registry = registry
        self.admission = admission
        self.config = config or settings
        self._in_flight: set[asyncio.Task] = set()

    @property
    def key_scope(self) -> CredentialScope:
        return CredentialScope.SHARED if self.config.shared_key_mode else CredentialScope.USER

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def submit_message(self, identity: str, text: str, *, interactive: bool = True) -> Outcome:
        """Run the full pipeline for one message and return its outcome."""
        rejection = self._admit(identity, text, interactive)
        if rejection is not None:
            return rejection
        return await self._process(identity, text)

    def post_message(
        self,
        identity: str,
        text: str,
        deliver: Deliver,
        *,
        interactive: bool = True,
    ) -> asyncio.Task | None:
        """Fire-and-forget form of ``submit_message``.

        Must be called from the home event loop. Rejections are delivered
        immediately; admitted requests run as a worker task and their outcome
        is delivered back on the home loop. ``deliver`` is called exactly once.
        """
        # Raises before any quota is taken when there is no running loop
        home_loop = asyncio.get_running_loop()

        rejection = self._admit(identity, text, interactive)
        if rejection is not None:
            deliver(rejection)
            return None

        task = home_loop.create_task(self._process(identity, text))
        self._in_flight.add(task)

        def _on_done(done: asyncio.Task) -> None:
            self._in_flight.discard(done)
            if done.cancelled():
                outcome = Outcome.failed("Request was cancelled.", error_code="cancelled")
            else:
                outcome = done.result()
            home_loop.call_soon_threadsafe(deliver, outcome)

        task.add_done_callback(_on_done)
        return task

    def _admit(self, identity: str, text: str, interactive: bool) -> Outcome | None:
        """Validation and admission: synchronous, no storage or network access."""
        try:
            self._validate(text, interactive)
            if not self.admission.try_acquire(identity):
                raise RateLimited()
        except (ValidationError, RateLimited) as e:
            logger.debug("Rejected message from %s: %s", identity, e.code)
            return Outcome.rejected(e.message, error_code=e.code)
        return None

    def _validate(self, text: str, interactive: bool) -> None:
        if not interactive:
            raise ValidationError("Only players can use this command.")
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty.")
        max_len = self.config.max_message_length
        if len(text) > max_len:
            raise ValidationError(f"Message too long. Max: {max_len} characters.")

    async def _process(self, identity: str, text: str) -> Outcome:
        """Credential resolution, dispatch and completion. Never raises."""
        provider: Provider | None = None
        try:
            user_settings = await self.store.load(identity)
            provider = user_settings.active_provider
            self._ensure_allowed(provider)

            api_key = await self._resolve_api_key(identity, user_settings, provider)
            request = self._build_request(user_settings, provider, text)
            adapter = self.registry.get(provider)
            response = await adapter.chat(request, api_key)

        except ValidationError as e:
            return Outcome.rejected(e.message, error_code=e.code)
        except CredentialMissing as e:
            return Outcome.failed(e.message, error_code=e.code)
        except DecryptionFailed as e:
            logger.error("Stored %s key for %s could not be decrypted", _provider_id(provider), identity)
            if self.config.shared_key_mode:
                message = (
                    f"The server API key for {provider.display_name} could not be read. "
                    f"Ask an admin to set it again with {provider.setkey_hint}"
                )
            else:
                message = f"Your stored API key could not be read. Set it again with {provider.setkey_hint}"
            return Outcome.failed(message, error_code=e.code)
        except ProviderError as e:
            logger.warning("AI request failed for %s (%s): %s", identity, e.code, redact(e.message))
            return Outcome.failed(e.message, error_code=e.code)
        except Exception as e:
            logger.error("AI request failed for %s: %s: %s", identity, type(e).__name__, redact(str(e)))
            return Outcome.failed(GENERIC_FAILURE, error_code=e.code if isinstance(e, AskAIError) else "internal_error")

        logger.info(
            "AI request completed for %s via %s/%s (%d tokens)",
            identity,
            provider.value,
            request.model,
            response.total_tokens,
        )
        message = response.text or f"{provider.display_name} returned no text (finish reason: {response.finish_reason})."
        return Outcome.success(message, payload=ChatResult(provider=provider, model=request.model, response=response))

    async def _resolve_api_key(self, identity: str, user_settings: UserSettings, provider: Provider) -> str:
        if self.config.shared_key_mode:
            shared = await self.store.load(identity, scope=CredentialScope.SHARED)
            token = shared.get_encrypted_key(provider)
            if token is None:
                raise CredentialMissing(
                    f"No server API key set for {provider.display_name}. "
                    f"Ask an admin to set it with {provider.setkey_hint}"
                )
        else:
            token = user_settings.get_encrypted_key(provider)
            if token is None:
                raise CredentialMissing(
                    f"No API key set for {provider.display_name}. Use: {provider.setkey_hint}"
                )
        return self.vault.decrypt(token)

    def _build_request(self, user_settings: UserSettings, provider: Provider, text: str) -> NormalizedRequest:
        # Single-shot: no history, one user message
        return NormalizedRequest(
            model=user_settings.get_model(provider),
            messages=[ChatMessage(role=Role.USER.value, content=text)],
            system_prompt=self.config.system_prompt or None,
            max_tokens=self.config.max_response_tokens,
            temperature=self.config.temperature,
        )

    # ------------------------------------------------------------------
    # Settings operations
    # ------------------------------------------------------------------

    async def set_credential(self, identity: str, provider_id: str, secret: str) -> Outcome:
        """Encrypt and store an API key. In shared mode it goes to the shared record."""
        try:
            provider = self._parse_provider(provider_id)
            self._ensure_allowed(provider)
            if not secret or not secret.strip():
                raise ValidationError(f"API key cannot be empty. Use: {provider.setkey_hint}")
        except ValidationError as e:
            return Outcome.rejected(e.message, error_code=e.code)

        scope = self.key_scope
        try:
            token = self.vault.encrypt(secret.strip())
            await self.store.set_credential(identity, provider, token, scope=scope)
        except Exception as e:
            logger.error("Failed to save %s key for %s: %s", provider.value, identity, redact(str(e)))
            return Outcome.failed("Failed to save key.")

        logger.info("%s set a %s API key (redacted from logs)", identity, provider.value)
        if scope == CredentialScope.SHARED:
            return Outcome.success(f"{provider.display_name} server API key set.")
        return Outcome.success(f"{provider.display_name} API key set.")

    async def set_model(self, identity: str, provider_id: str, model_id: str) -> Outcome:
        try:
            provider = self._parse_provider(provider_id)
            model_id = (model_id or "").strip()
            if not model_id or len(model_id) > MAX_MODEL_ID_LENGTH or any(c.isspace() for c in model_id):
                suggestions = ", ".join(provider.suggested_models)
                raise ValidationError(f"Invalid model name. Try one of: {suggestions}")
        except ValidationError as e:
            return Outcome.rejected(e.message, error_code=e.code)

        try:
            await self.store.set_model(identity, provider, model_id)
        except Exception as e:
            logger.error("Failed to set model for %s: %s", identity, redact(str(e)))
            return Outcome.failed("Failed to set model.")

        return Outcome.success(f"Model for {provider.display_name} set to: {model_id}")

    async def set_active_provider(self, identity: str, provider_id: str) -> Outcome:
        try:
            provider = self._parse_provider(provider_id)
            self._ensure_allowed(provider)
        except ValidationError as e:
            return Outcome.rejected(e.message, error_code=e.code)

        try:
            await self.store.set_active_provider(identity, provider)
        except Exception as e:
            logger.error("Failed to switch provider for %s: %s", identity, redact(str(e)))
            return Outcome.failed("Failed to switch provider.")

        return Outcome.success(f"Switched to {provider.display_name} ({provider.default_model})")

    async def get_status(self, identity: str) -> Outcome:
        """Active provider, per-provider model and key presence.

        In shared mode key presence reflects the shared record, models stay personal.
        """
        try:
            own = await self.store.load(identity)
            keys = own
            if self.config.shared_key_mode:
                keys = await self.store.load(identity, scope=CredentialScope.SHARED)
        except Exception as e:
            logger.error("Failed to load settings for %s: %s", identity, redact(str(e)))
            return Outcome.failed("Failed to load settings.")

        view = StatusView(
            active_provider=own.active_provider,
            active_model=own.get_model(own.active_provider),
            key_scope=self.key_scope,
            per_provider_model={p: own.get_model(p) for p in Provider},
            per_provider_has_key={p: keys.has_key(p) for p in Provider},
        )
        return Outcome.success(payload=view)

    def release(self, identity: str) -> None:
        """Disconnect hook: drop the identity's rate window."""
        self.admission.release(identity)

    async def aclose(self) -> None:
        """Wait for in-flight requests so every caller still gets its outcome, then close the store."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        close = getattr(self.store, "aclose", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def allowed_providers(self) -> frozenset[Provider]:
        ids = self.config.allowed_provider_ids
        if not ids:
            return frozenset(Provider)
        return frozenset(p for p in (Provider.from_id(i) for i in ids) if p is not None)

    def _parse_provider(self, provider_id: str) -> Provider:
        provider = Provider.from_id(provider_id)
        if provider is None:
            known = ", ".join(p.value for p in Provider)
            raise ValidationError(f"Unknown provider. Use: {known}")
        return provider

    def _ensure_allowed(self, provider: Provider) -> None:
        if provider not in self.allowed_providers:
            raise ValidationError(f"{provider.display_name} is not enabled on this server.")


def _provider_id(provider: Provider | None) -> str:
    return provider.value if provider is not None else "unknown"
