from typing import Optional

from pydantic import BaseModel


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class InvalidArgument(DomainException):
    """Malformed payload or input that fails a business validation rule."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=400,
            title="Invalid argument",
            detail=detail,
            code="invalid_argument",
        )


class Unauthenticated(DomainException):
    def __init__(self, detail: str = "Authentication is required.") -> None:
        super().__init__(
            status_code=401,
            title="Unauthenticated",
            detail=detail,
            code="unauthenticated",
        )


class PermissionDenied(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=403,
            title="Permission denied",
            detail=detail,
            code="permission_denied",
        )


class NotFound(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=404,
            title="Not found",
            detail=detail,
            code="not_found",
        )


class FailedPrecondition(DomainException):
    """The request is well formed but the current state does not allow it."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            title="Failed precondition",
            detail=detail,
            code="failed_precondition",
        )


class AlreadyExists(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            title="Already exists",
            detail=detail,
            code="already_exists",
        )
