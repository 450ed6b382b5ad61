"""
Portal exceptions.

Every failure of a user action is scoped to that action and reported back to
the operator; nothing here is fatal to the process.

Usage:
    from errors import ValidationError, StudentNotFoundError

    if not reason.strip():
        raise ValidationError("Mohon isi alasan perubahan data.", field="reason")
"""
from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base exception for all portal errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation
# ============================================

class ValidationError(PortalError):
    """Input rejected before any mutation took place"""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else {}
        )


class UnknownFieldError(ValidationError):
    """Correction targets a field that is not correctable"""

    def __init__(self, field_key: str):
        super().__init__(f"Field '{field_key}' tidak dapat dikoreksi", field="fieldKey")
        self.code = "UNKNOWN_FIELD"
        self.details["fieldKey"] = field_key


# ============================================
# Lookup
# ============================================

class NotFoundError(PortalError):
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"{resource} not found: {resource_id}",
            code="NOT_FOUND",
            details={"resource": resource, "id": resource_id}
        )


class StudentNotFoundError(NotFoundError):
    def __init__(self, student_id: str):
        super().__init__("Student", student_id)


class CorrectionNotFoundError(NotFoundError):
    def __init__(self, request_id: str):
        super().__init__("CorrectionRequest", request_id)


class DocumentNotFoundError(NotFoundError):
    def __init__(self, doc_id: str):
        super().__init__("Document", doc_id)


# ============================================
# Workflow
# ============================================

class InvalidTransitionError(PortalError):
    """Item already left the PENDING state"""

    status_code = 409

    def __init__(self, item_id: str, status: str):
        super().__init__(
            f"Item {item_id} sudah diproses ({status})",
            code="INVALID_TRANSITION",
            details={"id": item_id, "status": status}
        )


# ============================================
# Persistence
# ============================================

class StoreError(PortalError):
    """Write to the backing store failed after retries"""

    status_code = 502

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(
            message,
            code="STORE_ERROR",
            details={"operation": operation} if operation else {}
        )


# ============================================
# Access
# ============================================

class AuthenticationError(PortalError):
    status_code = 401

    def __init__(self, message: str = "Username atau password salah"):
        super().__init__(message, code="AUTH_FAILED")
