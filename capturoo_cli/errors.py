"""Exceptions raised by the Capturoo CLI.

Library code raises these; ``cli.main`` is the only place that turns them into
an error message on stderr and a non-zero exit status.
"""

from __future__ import annotations

from typing import Optional


class CapturooError(Exception):
    """Base class for all errors reported by the CLI."""

    pass


class ConfigError(CapturooError):
    pass


class TokenFileNotFound(CapturooError):
    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"token file {filename!r} not found")


class TokenDecodeError(CapturooError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"failed to decode token file {path!r}: {reason}")


class MalformedToken(CapturooError):
    pass


class EventSpecError(CapturooError):
    pass


class ExportError(CapturooError):
    pass


class TransportError(CapturooError):
    """Network level failure (timeout, DNS, connection refused)."""

    pass


class AuthError(CapturooError):
    """Structured 400 response from the identity provider."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code} {message}")


class HTTPStatusError(CapturooError):
    def __init__(self, status: int, reason: str = "") -> None:
        self.status = status
        self.reason = reason
        super().__init__(f"{status} {reason}".strip())


class APIError(CapturooError):
    """Non-2xx response from the product API with an unrecognised error code."""

    def __init__(self, status: int, code: str = "", message: str = "") -> None:
        self.status = status
        self.code = code
        self.message = message
        detail = f" code={code}" if code else ""
        detail += f" message={message!r}" if message else ""
        super().__init__(f"API error status={status}{detail}")


class SentinelAPIError(CapturooError):
    """Known error code returned by the product API."""

    code = ""

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.code
        super().__init__(self.message)


class BucketCodeExists(SentinelAPIError):
    code = "buckets/bucket-code-exists"


class WebhookURLExists(SentinelAPIError):
    code = "webhook/webhook-url-exists"


class WebhookCodeExists(SentinelAPIError):
    code = "webhook/webhook-code/exists"


class WebhookResourcesNotFound(SentinelAPIError):
    code = "webhook/webhook-resources-not-found"


class BadRequest(SentinelAPIError):
    code = "bad-request"


class ResourceNotFound(CapturooError):
    pass


class InvalidArgument(CapturooError):
    pass
