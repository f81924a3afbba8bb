"""Purchase order and payment lifecycles as explicit transition tables"""

from enum import Enum
from typing import Dict, FrozenSet

from credit_ledger.domain.exceptions import InvalidStatusTransition


class PurchaseOrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


PURCHASE_ORDER_TRANSITIONS: Dict[PurchaseOrderStatus, FrozenSet[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.PENDING: frozenset({PurchaseOrderStatus.APPROVED, PurchaseOrderStatus.REJECTED}),
    PurchaseOrderStatus.APPROVED: frozenset(),
    PurchaseOrderStatus.REJECTED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.CONFIRMED, PaymentStatus.REJECTED}),
    PaymentStatus.CONFIRMED: frozenset(),
    PaymentStatus.REJECTED: frozenset(),
}


def transition_purchase_order(current, target: PurchaseOrderStatus) -> PurchaseOrderStatus:
    current = PurchaseOrderStatus(current)
    if target not in PURCHASE_ORDER_TRANSITIONS[current]:
        raise InvalidStatusTransition("purchase order", current, target)
    return target


def transition_payment(current, target: PaymentStatus) -> PaymentStatus:
    current = PaymentStatus(current)
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidStatusTransition("payment", current, target)
    return target
