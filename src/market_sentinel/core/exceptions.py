"""Custom exception hierarchy for market-sentinel."""

from typing import Any


class MarketSentinelError(Exception):
    """Base exception for all market-sentinel errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(MarketSentinelError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str: the config field that failed validation
        value: Any: the invalid value (redacted for secrets)
    """


class ProviderError(MarketSentinelError):
    """A quote provider failed to deliver usable records.

    Policy: log and advance to the next provider. Never surfaced to the
    caller of FailoverFetcher.fetch().

    Context keys:
        provider: str: adapter name
        url: str: the URL that was being fetched
        status_code: int | None: HTTP status if applicable
    """


class ProviderNotConfiguredError(ProviderError):
    """Provider requires credentials that are not configured.

    Raised before any network call so the fetcher skips the provider
    instantly.
    """


class AuthenticationError(ProviderError):
    """Provider session is missing or the login was rejected.

    Policy: no re-authentication per fetch. The session is established once
    at startup via connect().
    """


class ProviderResponseError(ProviderError):
    """Provider returned a payload that could not be parsed.

    Context keys:
        response_body: str | None: truncated response for debugging
    """


class InvalidSymbolError(MarketSentinelError):
    """Symbol identifier failed the allow-list pattern.

    Policy: log and skip the symbol before any network call.

    Context keys:
        symbol: str: the rejected identifier
    """


class StorageError(MarketSentinelError):
    """Quote repository operation failed.

    Context keys:
        operation: str: "save", "read", etc.
        path: str | None: file involved, for file-backed stores
    """


class AdvisoryError(MarketSentinelError):
    """Advisory generator returned an error or malformed response.

    Policy: fall back to the "no data" advisory.

    Context keys:
        status_code: int | None: HTTP status code if applicable
        response_body: str | None: truncated response for debugging
    """
