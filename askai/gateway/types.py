"""Core types and DTOs for the request pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

SETKEY_COMMAND = "/chat setkey"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Provider(str, Enum):
    """Supported AI chat backends. The first member is the default."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"

    @property
    def info(self) -> ProviderInfo:
        return PROVIDER_INFO[self]

    @property
    def display_name(self) -> str:
        return self.info.display_name

    @property
    def default_model(self) -> str:
        return self.info.default_model

    @property
    def suggested_models(self) -> tuple[str, ...]:
        return self.info.suggested_models

    @property
    def setkey_hint(self) -> str:
        """Exact command a user runs to configure a key for this provider."""
        return f"{SETKEY_COMMAND} {self.value} <your-key>"

    @classmethod
    def from_id(cls, provider_id: str | None) -> Provider | None:
        """Case-insensitive lookup, ``None`` for unknown ids."""
        if not provider_id:
            return None
        try:
            return cls(provider_id.strip().lower())
        except ValueError:
            return None

    @classmethod
    def default(cls) -> Provider:
        return next(iter(cls))


class CredentialScope(str, Enum):
    """Whose settings record a credential belongs to."""

    USER = "user"  # the caller's own record
    SHARED = "shared"  # the single server-wide record


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderInfo:
    display_name: str
    default_model: str
    suggested_models: tuple[str, ...]


PROVIDER_INFO: dict[Provider, ProviderInfo] = {
    Provider.OPENAI: ProviderInfo(
        display_name="OpenAI",
        default_model="gpt-4o-mini",
        suggested_models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "o1-mini"),
    ),
    Provider.ANTHROPIC: ProviderInfo(
        display_name="Anthropic",
        default_model="claude-haiku-4-5",
        suggested_models=("claude-sonnet-4-5", "claude-haiku-4-5"),
    ),
    Provider.GEMINI: ProviderInfo(
        display_name="Google Gemini",
        default_model="gemini-2.0-flash",
        suggested_models=("gemini-2.0-flash", "gemini-1.5-pro", "gemini-1.5-flash"),
    ),
}


# ---------------------------------------------------------------------------
# Normalized request / response
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


@dataclass
class NormalizedRequest:
    """Provider-agnostic request every adapter translates from."""

    model: str
    messages: list[ChatMessage] = field(default_factory=list)
    system_prompt: str | None = None
    max_tokens: int = 1024
    temperature: float = 0.7

    def __post_init__(self) -> None:
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be within [0, 2], got {self.temperature}")

    @property
    def has_system_prompt(self) -> bool:
        return bool(self.system_prompt and self.system_prompt.strip())


@dataclass
class NormalizedResponse:
    """Provider-agnostic response every adapter translates to."""

    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str = "unknown"

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


# ---------------------------------------------------------------------------
# Per-identity settings
# ---------------------------------------------------------------------------


@dataclass
class UserSettings:
    """Snapshot of one identity's settings, loaded fresh for every request."""

    identity: str
    scope: CredentialScope = CredentialScope.USER
    active_provider: Provider = field(default_factory=Provider.default)
    encrypted_keys: dict[Provider, str] = field(default_factory=dict)
    models: dict[Provider, str] = field(default_factory=dict)

    def get_encrypted_key(self, provider: Provider) -> str | None:
        return self.encrypted_keys.get(provider)

    def has_key(self, provider: Provider) -> bool:
        return provider in self.encrypted_keys

    def get_model(self, provider: Provider) -> str:
        return self.models.get(provider, provider.default_model)


# ---------------------------------------------------------------------------
# Caller-facing results
# ---------------------------------------------------------------------------


@dataclass
class ChatResult:
    """Success payload of a submitted message."""

    provider: Provider
    model: str
    response: NormalizedResponse


@dataclass
class StatusView:
    active_provider: Provider
    active_model: str
    key_scope: CredentialScope
    per_provider_model: dict[Provider, str] = field(default_factory=dict)
    per_provider_has_key: dict[Provider, bool] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "active_provider": self.active_provider.value,
            "active_model": self.active_model,
            "key_scope": self.key_scope.value,
            "providers": {
                p.value: {
                    "model": self.per_provider_model.get(p, p.default_model),
                    "has_key": self.per_provider_has_key.get(p, False),
                }
                for p in Provider
            },
        }


@dataclass
class Outcome:
    """Result of every caller-facing operation: exactly one per call."""

    status: OutcomeStatus
    message: str = ""
    payload: Any = None
    error_code: str = ""

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success(cls, message: str = "", payload: Any = None) -> Outcome:
        return cls(status=OutcomeStatus.SUCCESS, message=message, payload=payload)

    @classmethod
    def rejected(cls, message: str, error_code: str = "validation_error") -> Outcome:
        return cls(status=OutcomeStatus.REJECTED, message=message, error_code=error_code)

    @classmethod
    def failed(cls, message: str, error_code: str = "internal_error") -> Outcome:
        return cls(status=OutcomeStatus.FAILED, message=message, error_code=error_code)
