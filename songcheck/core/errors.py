"""
Error taxonomy for provider calls and job lookups.

Adapters raise ProviderError subclasses; the orchestrator turns every one of
them into a FAILED job carrying `str(error)` as its cause.
"""


class ProviderError(Exception):
    """A provider call failed. Carries the provider id and a readable cause."""

    kind = "provider_error"

    def __init__(self, provider_id: str, cause: str):
        super().__init__(f"{provider_id}: {cause}")
        self.provider_id = provider_id
        self.cause = cause


class TransportError(ProviderError):
    """Network, DNS or socket timeout."""

    kind = "transport_error"


class ProtocolError(ProviderError):
    """Non-2xx status or a body we could not decode."""

    kind = "protocol_error"


class AuthError(ProtocolError):
    """Credential rejected (401/403)."""

    kind = "auth_error"


class PollingTimeoutError(ProviderError):
    """Attempt ceiling reached while the backend was still working."""

    kind = "timeout"


class JobNotFoundError(LookupError):
    """Unknown request id or (provider, job id) pair."""


class ProviderSelectionError(ValueError):
    """Requested provider ids are unknown or not configured."""


class NoProvidersConfiguredError(ProviderSelectionError):
    """No provider has credentials configured."""
