"""Domain business exceptions, shared by domain, application and infrastructure.

The core layer only maps these to HTTP responses; the domain never imports
core to avoid a reverse dependency.
"""
from __future__ import annotations

from typing import Any, Optional, Union

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base business exception."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


# Messages returned to callers rejected by the auth gate
MISSING_CREDENTIAL_MESSAGE = "No credential is configured for the requested project key"
UNAUTHORIZED_REQUEST_MESSAGE = "The presented credential does not match the project key"


class AuthenticationException(BusinessException):
    """Caller failed the per-project credential check."""

    def __init__(self, *, missing_credential: bool, project_key: Optional[str] = None):
        if missing_credential:
            code, message, error_type = (
                BusinessCode.MISSING_CREDENTIAL,
                MISSING_CREDENTIAL_MESSAGE,
                "MissingCredential",
            )
        else:
            code, message, error_type = (
                BusinessCode.UNAUTHORIZED,
                UNAUTHORIZED_REQUEST_MESSAGE,
                "UnauthorizedRequest",
            )
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details={"project_key": project_key} if project_key else None,
        )


class AdminAuthenticationException(BusinessException):
    def __init__(self):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message="Invalid admin token",
            error_type="AdminUnauthorized",
        )


class DenylistEntryNotFoundException(BusinessException):
    def __init__(self, subject: str):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Shopper reference is not slowed down",
            error_type="DenylistEntryNotFound",
            details={"shopper_reference": subject},
        )


# A platform write whose commit could not be confirmed either way
WRITE_INDETERMINATE = "indeterminate"
# `staged` value when the staging write itself is indeterminate
STAGED_UNKNOWN = "unknown"


class PaymentCycleException(BusinessException):
    """Failure inside a payment update cycle.

    `stage` is the stage that failed to complete; `staged` tells whether a
    staging write already committed on the record.
    It is `"unknown"` when the staging write itself ended without an answer.
    `write_outcome` is set to `"indeterminate"` when the failing call was a
    platform write that may have committed; callers must re-read the record
    before retrying.
    """

    def __init__(
        self,
        code: int,
        message: str,
        *,
        error_type: str,
        payment_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.payment_id = payment_id
        self.stage: Optional[str] = None
        self.staged: Union[bool, str] = False
        self.write_outcome: Optional[str] = None
        full_details: dict[str, Any] = {"payment_id": payment_id}
        if details:
            full_details.update(details)
        super().__init__(code=code, message=message, error_type=error_type, details=full_details)

    def mark_write_indeterminate(self) -> "PaymentCycleException":
        self.write_outcome = WRITE_INDETERMINATE
        self.details = {
            **(self.details or {}),
            "write_outcome": WRITE_INDETERMINATE,
            "retryable": False,
        }
        return self

    def at_stage(
        self,
        stage: str,
        *,
        staged: Union[bool, str],
        payment_id: Optional[str] = None,
    ) -> "PaymentCycleException":
        self.stage = stage
        self.staged = staged
        if self.payment_id is None:
            self.payment_id = payment_id
        self.details = {
            **(self.details or {}),
            "payment_id": self.payment_id,
            "stage": stage,
            "staged": staged,
        }
        return self


class VersionConflictException(PaymentCycleException):
    def __init__(
        self,
        payment_id: str,
        *,
        expected_version: int,
        current_version: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(
            code=PaymentCode.VERSION_CONFLICT,
            message=f"Payment {payment_id} changed concurrently (expected version {expected_version})",
            error_type="VersionConflict",
            payment_id=payment_id,
            details={
                "expected_version": expected_version,
                "current_version": current_version,
                "payload": payload,
            },
        )
        self.expected_version = expected_version
        self.current_version = current_version


class DownstreamException(PaymentCycleException):
    """Gateway or platform call failed; carries the raw downstream payload."""

    def __init__(
        self,
        message: str,
        *,
        source: str,
        payment_id: Optional[str] = None,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(
            code=PaymentCode.GATEWAY_ERROR if source == "gateway" else PaymentCode.PLATFORM_ERROR,
            message=message,
            error_type="DownstreamError",
            payment_id=payment_id,
            details={"source": source, "status_code": status_code, "payload": payload},
        )
        self.source = source
        self.status_code = status_code
        self.payload = payload


class ExternalCallTimeoutException(PaymentCycleException):
    """An external call exceeded its time bound.

    Retryable for reads and gateway calls. A timed-out platform write may
    still have committed, so it is reported as indeterminate instead.
    """

    def __init__(
        self,
        *,
        source: str,
        timeout: float,
        payment_id: Optional[str] = None,
        write: bool = False,
    ):
        super().__init__(
            code=PaymentCode.WRITE_INDETERMINATE if write else PaymentCode.TIMEOUT,
            message=f"{source} call did not complete within {timeout:g}s",
            error_type="ExternalCallTimeout",
            payment_id=payment_id,
            details={"source": source, "timeout_seconds": timeout, "retryable": not write},
        )
        self.source = source
        self.timeout = timeout
        self.retryable = not write
        if write:
            self.mark_write_indeterminate()
