"""Error taxonomy for the request pipeline.

Every error carries a message that is safe to show to the end user and a
stable ``code`` used in outcomes and logs. Nothing here ever embeds a
request body, a header or an API key.
"""


class AskAIError(Exception):
    """Base error with a user-safe message."""

    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(AskAIError):
    """Bad input, correctable by the user."""

    code = "validation_error"


class RateLimited(AskAIError):
    """Local per-identity throttling refused the request."""

    code = "rate_limited"

    def __init__(self, message: str = "You are sending messages too fast. Please wait."):
        super().__init__(message)


class CredentialMissing(AskAIError):
    """No API key is stored for the active provider."""

    code = "credential_missing"


class DecryptionFailed(AskAIError):
    """A stored token could not be decrypted (corrupted, tampered or wrong key)."""

    code = "decryption_failed"

    def __init__(self, message: str = "Stored credential could not be decrypted"):
        super().__init__(message)


class UnregisteredProvider(AskAIError):
    """No adapter is registered for a provider. Configuration defect."""

    code = "unregistered_provider"


# ---------------------------------------------------------------------------
# Adapter errors
# ---------------------------------------------------------------------------


class ProviderError(AskAIError):
    """Raised by a provider adapter. The message is pre-sanitized."""

    code = "provider_error"


class InvalidCredential(ProviderError):
    """Upstream rejected the API key (401/403)."""

    code = "invalid_credential"


class RateLimitedUpstream(ProviderError):
    """Upstream throttled the request (429)."""

    code = "rate_limited_upstream"


class UpstreamError(ProviderError):
    """Any other upstream failure: HTTP >= 400, timeout or transport error."""

    code = "upstream_error"

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedUpstreamResponse(ProviderError):
    """2xx response whose body does not have the expected shape."""

    code = "malformed_upstream_response"
