"""
State machine guards for payments and settlement requests.

Only the transitions listed here are legal. Everything else raises
InvalidStateError so callers never half-apply a change.
"""

import logging
from typing import Dict, FrozenSet

from app.exceptions import InvalidStateError
from app.fsm.states import PaymentStatus, SettlementStatus

logger = logging.getLogger(__name__)


PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.CAPTURED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
    ),
    PaymentStatus.CAPTURED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

SETTLEMENT_TRANSITIONS: Dict[SettlementStatus, FrozenSet[SettlementStatus]] = {
    SettlementStatus.PENDING: frozenset(
        {SettlementStatus.APPROVED, SettlementStatus.REJECTED}
    ),
    SettlementStatus.APPROVED: frozenset({SettlementStatus.PROCESSED}),
    SettlementStatus.REJECTED: frozenset(),
    SettlementStatus.PROCESSED: frozenset(),
}


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS[current]


def ensure_payment_transition(current: str, target: PaymentStatus) -> PaymentStatus:
    """
    Validate a payment status change.

    Args:
        current: Stored status value
        target: Requested status

    Returns:
        The target status, for assignment.
    """
    current_status = PaymentStatus(current)
    if not can_transition_payment(current_status, target):
        logger.warning(f"Rejected payment transition {current_status.value} -> {target.value}")
        raise InvalidStateError(
            f"Cannot move payment from {current_status.value} to {target.value}",
            {"current": current_status.value, "target": target.value},
        )
    return target


def can_transition_settlement(current: SettlementStatus, target: SettlementStatus) -> bool:
    return target in SETTLEMENT_TRANSITIONS[current]


def ensure_settlement_transition(current: str, target: SettlementStatus) -> SettlementStatus:
    """Validate a settlement request status change."""
    current_status = SettlementStatus(current)
    if not can_transition_settlement(current_status, target):
        logger.warning(
            f"Rejected settlement transition {current_status.value} -> {target.value}"
        )
        raise InvalidStateError(
            f"Cannot move settlement request from {current_status.value} to {target.value}",
            {"current": current_status.value, "target": target.value},
        )
    return target
