"""
Domain errors for payments, wallets and settlements.

Each error carries the HTTP status the API layer answers with.
"""

from typing import Optional


class SettlementEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SettlementEngineError):
    """Bad input: non-positive amount, missing reference, below minimum."""

    status_code = 400
    code = "validation_error"


class NotFoundError(SettlementEngineError):
    """Payment, wallet or settlement request does not exist."""

    status_code = 404
    code = "not_found"


class SignatureError(SettlementEngineError):
    """Gateway signature mismatch. Never retried."""

    status_code = 400
    code = "invalid_signature"


class InvalidStateError(SettlementEngineError):
    """Operation is not allowed from the record's current status."""

    status_code = 409
    code = "invalid_state"


class InsufficientBalanceError(SettlementEngineError):
    """Debit or settlement exceeds the wallet balance."""

    status_code = 400
    code = "insufficient_balance"


class PaymentGatewayError(SettlementEngineError):
    """Razorpay call failed."""

    status_code = 502
    code = "gateway_error"
