"""Share lifecycle error hierarchy.

Every error carries the HTTP status it maps to and a stable machine-readable
``reason`` so routers can translate without string matching. Expired shares
deliberately reuse the not-found reason and message.
"""

from __future__ import annotations


class ShareError(Exception):
    """Base class for all share lifecycle failures."""

    status_code: int = 500
    reason: str = "share_error"
    default_message: str = "Share operation failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> dict:
        return {"reason": self.reason, "message": self.message}


# Validation (user-correctable input)


class ShareValidationError(ShareError):
    status_code = 400
    reason = "invalid_request"
    default_message = "Invalid share request."


class PayloadConflict(ShareValidationError):
    reason = "payload_conflict"
    default_message = "Provide either text or a file, not both."


class InvalidExpiry(ShareValidationError):
    reason = "invalid_expiry"
    default_message = "Invalid expiry."


class InvalidViewLimit(ShareValidationError):
    reason = "invalid_view_limit"
    default_message = "max_views must be a positive integer."


class PayloadTooLarge(ShareValidationError):
    status_code = 413
    reason = "payload_too_large"
    default_message = "File too large."


# Identity / ownership


class ShareAuthError(ShareError):
    status_code = 401
    reason = "auth_error"


class AuthenticationRequired(ShareAuthError):
    reason = "authentication_required"
    default_message = "Authentication required."


class Forbidden(ShareAuthError):
    status_code = 403
    reason = "forbidden"
    default_message = "You do not have permission to modify this share."


# Absent or expired


class ShareNotFound(ShareError):
    status_code = 404
    reason = "not_found"
    default_message = "Content not found or has expired."


class ShareExpired(ShareNotFound):
    """Expired share; callers see exactly what a missing share looks like."""


# Access gates


class GateRejected(ShareError):
    status_code = 403
    reason = "gate_rejected"


class PasswordRequired(GateRejected):
    reason = "password_required"
    default_message = "Password required."


class InvalidPassword(GateRejected):
    reason = "invalid_password"
    default_message = "Invalid password."


class AlreadyConsumed(GateRejected):
    reason = "already_consumed"
    default_message = "This link can only be viewed once."


class LimitReached(GateRejected):
    reason = "limit_reached"
    default_message = "Maximum view count reached."


# Storage


class StorageFailure(ShareError):
    status_code = 500
    reason = "storage_failure"
    default_message = "Storage operation failed."


class BlobStorageError(StorageFailure):
    reason = "blob_storage_failure"
    default_message = "File storage operation failed."


class RecordStoreError(StorageFailure):
    reason = "record_store_failure"
    default_message = "Share record store operation failed."


class IdExhaustion(StorageFailure):
    reason = "id_exhaustion"
    default_message = "Could not allocate a unique share id."


class StorageUnavailable(StorageFailure):
    status_code = 503
    reason = "storage_unavailable"
    default_message = "Share storage is temporarily unavailable."


class DuplicateShareId(Exception):
    """Raised by the record store when a share id is already taken."""

    def __init__(self, share_id: str):
        self.share_id = share_id
        super().__init__(f"Share id already exists: {share_id}")
