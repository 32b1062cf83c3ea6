"""
errors.py — AppError base class and error code registry.

Every error returned by the GroupLedger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
  - Every failure leaves the ledger exactly as it was before the call.
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
        self.field       = field  # which request field caused the error

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


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by kind. HTTP status is indicated in the section header.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    DUPLICATE_PARTICIPANT      = "DUPLICATE_PARTICIPANT"

    # ── Shape / Consistency Errors (400) ───────────────────────────────────
    INVALID_PARTICIPANT_DATA   = "INVALID_PARTICIPANT_DATA"   # neither or both shares given
    PARTS_SUM_MISMATCH         = "PARTS_SUM_MISMATCH"         # |sum(shares) - total| > 0.01
    SAME_USER                  = "SAME_USER"                  # settlement payer == receiver
    CANNOT_REMOVE_SELF         = "CANNOT_REMOVE_SELF"

    # ── Membership Validation Errors (400) ─────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    PARTICIPANT_NOT_MEMBER     = "PARTICIPANT_NOT_MEMBER"
    FROM_USER_NOT_MEMBER       = "FROM_USER_NOT_MEMBER"
    TO_USER_NOT_MEMBER         = "TO_USER_NOT_MEMBER"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER                    = "ALREADY_MEMBER"
    CANNOT_REMOVE_MEMBER_WITH_BALANCE = "CANNOT_REMOVE_MEMBER_WITH_BALANCE"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you lack membership or role
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── Storage / Invariant Errors (500) ───────────────────────────────────
    LEDGER_IMMUTABLE            = "LEDGER_IMMUTABLE"
    LEDGER_INTEGRITY_VIOLATION  = "LEDGER_INTEGRITY_VIOLATION"
    FAILED_TO_CREATE_EXPENSE    = "FAILED_TO_CREATE_EXPENSE"
    FAILED_TO_CREATE_SETTLEMENT = "FAILED_TO_CREATE_SETTLEMENT"
    INTERNAL_ERROR              = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # A participant was included with a zero share: a split row is written
    # but no debit reaches the ledger.
    ZERO_SHARE_PARTICIPANT = "ZERO_SHARE_PARTICIPANT"
