"""Custom exceptions for the AutoClaim service."""

from typing import Optional, Dict, Any


class AutoClaimException(Exception):
    """Base exception for all AutoClaim errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ===================
# Validation
# ===================

class ClaimValidationError(AutoClaimException):
    """Bad or missing input; the caller can correct and retry."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={"field": field} if field else {}
        )


# ===================
# Lookup
# ===================

class NotFoundError(AutoClaimException):
    """Base exception for missing entities."""

    status_code = 404


class ClaimNotFoundError(NotFoundError):
    """Claim not found in storage."""

    def __init__(self, claim_id: str):
        super().__init__(
            message=f"Claim not found: {claim_id}",
            error_code="CLAIM_NOT_FOUND",
            details={"claim_id": claim_id}
        )


class UserNotFoundError(NotFoundError):
    """User not found, or deactivated."""

    def __init__(self, user_id: str):
        super().__init__(
            message=f"User not found: {user_id}",
            error_code="USER_NOT_FOUND",
            details={"user_id": user_id}
        )


# ===================
# Lifecycle
# ===================

class InvalidClaimStatusTransition(AutoClaimException):
    """Invalid claim status transition."""

    status_code = 400

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            message=f"Cannot transition from {current_status} to {new_status}",
            error_code="INVALID_STATUS_TRANSITION",
            details={"current_status": current_status, "new_status": new_status}
        )


# ===================
# Adapter Failures
# ===================

class DependencyError(AutoClaimException):
    """Base exception for object store, analysis and notification failures."""

    status_code = 502


class StoreError(DependencyError):
    """Image could not be written to the object store."""

    def __init__(self, message: str, filename: Optional[str] = None):
        super().__init__(
            message=f"Image storage failed: {message}",
            error_code="STORE_ERROR",
            details={"filename": filename} if filename else {}
        )


class AnalysisError(DependencyError):
    """Image analysis backend failed or returned garbage."""

    def __init__(self, message: str, reference: Optional[str] = None):
        super().__init__(
            message=f"Image analysis failed: {message}",
            error_code="ANALYSIS_ERROR",
            details={"reference": reference} if reference else {}
        )


class DeliveryError(DependencyError):
    """Notification could not be delivered."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(
            message=f"Notification delivery failed: {message}",
            error_code="DELIVERY_ERROR",
            details={"address": address} if address else {}
        )


# ===================
# Storage Exceptions
# ===================

class StorageException(AutoClaimException):
    """Base exception for record storage errors."""

    status_code = 503


class StorageUnavailableError(StorageException):
    """The claim record itself could not be persisted."""

    def __init__(self, message: str):
        super().__init__(
            message=f"Storage unavailable: {message}",
            error_code="STORAGE_UNAVAILABLE"
        )


class DuplicateEntityError(StorageException):
    """A unique key is already taken."""

    status_code = 409

    def __init__(self, field: str, value: str):
        super().__init__(
            message=f"Duplicate {field}: {value}",
            error_code="DUPLICATE_ENTITY",
            details={"field": field, "value": value}
        )


class StaleClaimError(StorageException):
    """Compare-and-set on a claim lost against a concurrent writer."""

    status_code = 409

    def __init__(self, claim_id: str, expected_status: str, actual_status: str):
        super().__init__(
            message=f"Claim {claim_id} changed concurrently ({expected_status} -> {actual_status})",
            error_code="STALE_CLAIM",
            details={
                "claim_id": claim_id,
                "expected_status": expected_status,
                "actual_status": actual_status,
            }
        )
