"""Exception hierarchy for resource lifecycle and probe failures.

Lifecycle errors (``ResourceError``) propagate to the caller of the manager.
Probe errors (``ProbeError``) never leave the check pipeline; they become
failing log entries.
"""
from typing import Optional


class ResourceError(Exception):
    """Base class for errors raised by resource lifecycle operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidResourceType(ResourceError):
    """Resource type is not one of the supported probe types."""

    def __init__(self, resource_type: Optional[str]):
        super().__init__(f"Invalid resource type: {resource_type}")
        self.resource_type = resource_type


class InvalidResourceInterval(ResourceError):
    """Check interval is not a whole number of minutes of at least 1."""

    def __init__(self, interval):
        super().__init__(f"Invalid interval: {interval} (must be a whole number of minutes, at least 1)")
        self.interval = interval


class NotFoundOrForbidden(ResourceError):
    """Resource is missing or the requesting user may not modify it."""

    def __init__(self, resource_id: int):
        super().__init__(f"Resource {resource_id} not found or access denied")
        self.resource_id = resource_id


class ResourceNameTaken(ResourceError):
    """Another resource already uses this name."""

    def __init__(self, name: str):
        super().__init__(f"Resource name already in use: {name}")
        self.name = name


class ProbeError(Exception):
    """Base class for failures while probing a resource.

    ``status_code`` is set when the endpoint answered before the failure.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProbeTransportError(ProbeError):
    """Network, timeout, connection or non-success HTTP status failure."""


class ProbeContentError(ProbeError):
    """Unexpected content type or unparsable body."""


class MailerStepError(ProbeError):
    """One of the two mailer requests failed in transport."""

    def __init__(self, step: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"/{step} check failed: {message}", status_code)
        self.step = step


class UnknownResourceType(ProbeError):
    """Snapshot carries a type the probe executor cannot dispatch."""

    def __init__(self, resource_type: str):
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type
