"""Custom exception types."""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for every failure raised by the gateway."""

    error_type = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProviderError(GatewayError):
    """Raised when a specific provider cannot satisfy the request."""

    def __init__(self, provider_name: str, message: str = "Provider unavailable") -> None:
        super().__init__(message)
        self.provider_name = provider_name


class ConfigurationError(ProviderError):
    """Raised when a provider is missing credentials or is misconfigured."""

    error_type = "configuration_error"


class MessageValidationError(GatewayError):
    """Raised when the inbound message list is malformed."""

    error_type = "invalid_messages"

    def __init__(self, detail: str | None = None) -> None:
        message = "Invalid messages array" if not detail else f"Invalid messages: {detail}"
        super().__init__(message)
        self.detail = detail


class UpstreamHTTPError(ProviderError):
    """Raised when the upstream API answers with a non-2xx status."""

    error_type = "upstream_http_error"

    def __init__(
        self,
        provider_name: str,
        status_code: int,
        reason: str = "",
        body: Any | None = None,
        *,
        include_body: bool = False,
    ) -> None:
        message = f"{provider_name} API error: {status_code} {reason}".rstrip()
        if include_body and body:
            message = f"{message} - {body}"
        super().__init__(provider_name, message=message)
        self.status_code = status_code
        self.reason = reason
        self.body = body


class ProviderNetworkError(ProviderError):
    """Raised when the request never produced an HTTP response."""

    error_type = "network_error"


class ResponseParseError(ProviderError):
    """Raised when a successful response body is not a JSON object."""

    error_type = "parse_error"
