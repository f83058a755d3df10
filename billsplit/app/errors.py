"""
errors.py — AppError and the error/warning code registries.

Every error the billsplit API returns carries one of the codes below.
Services raise AppError; the global handler in app/__init__.py turns it into
the JSON envelope. Codes are a published contract: add new ones, never rename.

401 means "we do not know who you are"; 403 means "we know, and the answer is no".
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # request field that caused the error, if any

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD               = "MISSING_FIELD"
    INVALID_FIELD               = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION    = "INVALID_AMOUNT_PRECISION"
    INVALID_CURRENCY            = "INVALID_CURRENCY"
    INVALID_CATEGORY            = "INVALID_CATEGORY"
    INVALID_SPLIT_TYPE          = "INVALID_SPLIT_TYPE"
    SPLITS_SENT_FOR_EQUAL_SPLIT = "SPLITS_SENT_FOR_EQUAL_SPLIT"
    DUPLICATE_SPLIT_USER        = "DUPLICATE_SPLIT_USER"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL             = "DUPLICATE_EMAIL"
    ALREADY_MEMBER              = "ALREADY_MEMBER"
    CONCURRENT_UPDATE           = "CONCURRENT_UPDATE"     # retries exhausted

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND              = "USER_NOT_FOUND"
    GROUP_NOT_FOUND             = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND           = "EXPENSE_NOT_FOUND"
    SETTLEMENT_NOT_FOUND        = "SETTLEMENT_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER            = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER       = "SPLIT_USER_NOT_MEMBER"
    SPLIT_SUM_MISMATCH          = "SPLIT_SUM_MISMATCH"
    PERCENTAGE_SUM_MISMATCH     = "PERCENTAGE_SUM_MISMATCH"
    NO_PARTICIPANTS             = "NO_PARTICIPANTS"
    RECIPIENT_NOT_MEMBER        = "RECIPIENT_NOT_MEMBER"
    SELF_SETTLEMENT             = "SELF_SETTLEMENT"
    EXPENSE_DELETED             = "EXPENSE_DELETED"
    SETTLEMENT_DELETED          = "SETTLEMENT_DELETED"
    OUTSTANDING_BALANCE         = "OUTSTANDING_BALANCE"
    OWNER_CANNOT_LEAVE          = "OWNER_CANNOT_LEAVE"

    # ── Auth Errors ────────────────────────────────────────────────────────
    INVALID_CREDENTIALS         = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING               = "TOKEN_MISSING"          # 401
    TOKEN_INVALID               = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED               = "TOKEN_EXPIRED"          # 401
    REFRESH_TOKEN_INVALID       = "REFRESH_TOKEN_INVALID"  # 401
    FORBIDDEN                   = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR              = "INTERNAL_ERROR"
    BALANCE_NOT_FOUND           = "BALANCE_NOT_FOUND"      # group has no cache row


# Warnings ride alongside a 2xx response in the `warnings` array.
class WarningCode:

    # Settlement larger than the payer's current debt to the payee.
    # Still recorded; paying ahead is allowed.
    OVERPAYMENT = "OVERPAYMENT"
