"""
Gateway Error Taxonomy
======================

Every failure the gate or the loader can surface, each with a stable code.

Gate-side errors are detected locally and returned to the caller
synchronously; the API layer turns them into HTTP responses using
``http_status`` and ``code``.

Loader-side errors:
- LedgerWriteFailure: transient, retried with exponential backoff
- LedgerWriteExhausted: fatal for the current run, resumable via checkpoint
- ReconciliationMismatch: non-fatal, triggers a heal pass
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for admission/allocation failures."""

    code = "gateway_error"
    http_status = 500

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.context:
            body["context"] = self.context
        return body


class InvalidIdentity(GatewayError):
    code = "invalid_identity"
    http_status = 400


class InvalidRequest(GatewayError):
    """Request body or query is missing fields or has the wrong types."""

    code = "invalid_request"
    http_status = 400


class TokenExpired(GatewayError):
    code = "token_expired"
    http_status = 401


class TokenForged(GatewayError):
    code = "token_forged"
    http_status = 401


class PoWInvalid(GatewayError):
    code = "pow_invalid"
    http_status = 400


class QuotaExceeded(GatewayError):
    code = "quota_exceeded"
    http_status = 429


class ReplayDetected(GatewayError):
    code = "replay_detected"
    http_status = 409


class SoldOut(GatewayError):
    code = "sold_out"
    http_status = 410


class AssignmentError(GatewayError):
    """Counter slot has no matching inventory item (misconfigured supply)."""

    code = "assignment_error"
    http_status = 500


# ============================================================
# Loader errors
# ============================================================

class LedgerError(Exception):
    """Base class for bulk loader failures."""


class LedgerWriteFailure(LedgerError):
    """A single ledger write failed. Retryable."""

    def __init__(self, message: str, start_index: Optional[int] = None):
        super().__init__(message)
        self.start_index = start_index


class LedgerWriteExhausted(LedgerError):
    """
    Retries for a batch were exhausted.

    The checkpoint has already been persisted when this is raised, so a fresh
    run resumes from ``checkpoint.last_confirmed_index``.
    """

    def __init__(self, message: str, start_index: int, checkpoint=None):
        super().__init__(message)
        self.start_index = start_index
        self.checkpoint = checkpoint


class ReconciliationMismatch(LedgerError):
    """Observed ledger state disagrees with expectation."""

    def __init__(self, message: str, missing=None, conflicts=None):
        super().__init__(message)
        self.missing = list(missing or [])
        self.conflicts = list(conflicts or [])
