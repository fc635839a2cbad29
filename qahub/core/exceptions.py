"""
Platform-wide exception hierarchy.

Services raise these; ``qahub.utils.errors.register_error_handlers`` maps
each one to the JSON error envelope once for the whole app:

    {"error": {"code": "...", "message": "...", "details": ...}}

Usage:
    from qahub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="TestCase", resource_id=42)
    raise ValidationError("Invalid input data", details=[{"field": "title", "message": "required"}])
"""

import re


def _resource_code(resource: str) -> str:
    """``"TestCase"`` → ``"TEST_CASE"``; ``"test plan"`` → ``"TEST_PLAN"``."""
    if " " in resource:
        return resource.replace(" ", "_").upper()
    return re.sub(r"(?<!^)(?=[A-Z])", "_", resource).upper()


def _resource_label(resource: str) -> str:
    """``"TestCase"`` → ``"Test case"``."""
    words = re.sub(r"(?<!^)(?=[A-Z])", " ", resource).split()
    return " ".join(words).capitalize() if words else resource


class QaHubError(Exception):
    """Base class: carries an HTTP status, a machine-readable code and details."""

    status = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, *, code: str | None = None, details=None) -> None:
        self.message = message
        if code:
            self.code = code
        self.details = details
        super().__init__(message)


class NotFoundError(QaHubError):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts;
    a 403 would confirm the resource exists, a 404 does not.

    Args:
        resource: Model/entity name (e.g. "Project", "TestCase").
        resource_id: The PK that was looked up. Included in logs, not in the HTTP response.
        tenant_id: The scope that was enforced. For debug logging only.
        code: Override of the derived ``<RESOURCE>_NOT_FOUND`` code.
    """

    status = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
        code: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        super().__init__(
            f"{_resource_label(resource)} not found",
            code=code or f"{_resource_code(resource)}_NOT_FOUND",
        )

    def __str__(self) -> str:
        msg = self.resource
        if self.resource_id is not None:
            msg += f" id={self.resource_id}"
        msg += " not found"
        if self.tenant_id is not None:
            msg += f" (tenant={self.tenant_id})"
        return msg


class ValidationError(QaHubError):
    """Raised when input fails schema or business-rule validation.

    ``details`` is a list of ``{"field", "message"}`` dicts for field-level errors.
    """

    status = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Invalid input data", details=None, *, code: str | None = None) -> None:
        super().__init__(message, code=code, details=details)


class ConflictError(QaHubError):
    """Raised when an operation would violate a uniqueness rule. Maps to HTTP 409."""

    status = 409
    code = "CONFLICT"


class VersionConflictError(ConflictError):
    """Optimistic-lock failure: the client edited a stale version."""

    code = "VERSION_CONFLICT"

    def __init__(self, resource: str, current_version: int) -> None:
        self.current_version = current_version
        super().__init__(
            f"{_resource_label(resource)} has been modified by another user",
            details={"current_version": current_version},
        )


class GoneError(QaHubError):
    """The resource exists but is soft-deleted. Maps to HTTP 410."""

    status = 410
    code = "GONE"


class AuthenticationError(QaHubError):
    status = 401
    code = "UNAUTHORIZED"


class ForbiddenError(QaHubError):
    status = 403
    code = "FORBIDDEN"


class DomainError(QaHubError):
    """Any other typed failure with an explicit status (e.g. 502 from an integration)."""

    def __init__(self, message: str, *, code: str, status: int = 400, details=None) -> None:
        self.status = status
        super().__init__(message, code=code, details=details)
