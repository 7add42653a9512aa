"""Status transition tables for subscriptions and payment cycles.

Payment cycles use one canonical vocabulary. Older records written with the
short vocabulary are read through ``LEGACY_CYCLE_STATUS``.
"""

from enum import Enum

from subtrack.core.errors import InvalidStateError
from subtrack.models.payment_cycle import CycleStatus
from subtrack.models.subscription import SubscriptionStatus


class SubscriptionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


class CycleAction(str, Enum):
    RECORD_PAYMENT = "record payment for"
    APPROVE = "approve"
    REJECT = "reject"
    UPLOAD_INVOICE = "upload invoice for"
    COMPLETE = "complete"
    CANCEL = "cancel"


SUBSCRIPTION_TRANSITIONS: dict[SubscriptionAction, dict[SubscriptionStatus, SubscriptionStatus]] = {
    SubscriptionAction.APPROVE: {SubscriptionStatus.PENDING: SubscriptionStatus.ACTIVE},
    SubscriptionAction.REJECT: {SubscriptionStatus.PENDING: SubscriptionStatus.REJECTED},
    SubscriptionAction.CANCEL: {SubscriptionStatus.ACTIVE: SubscriptionStatus.CANCELLED},
}

DELETABLE_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.PENDING, SubscriptionStatus.REJECTED})

CYCLE_TRANSITIONS: dict[CycleAction, dict[CycleStatus, CycleStatus]] = {
    CycleAction.RECORD_PAYMENT: {
        CycleStatus.PENDING_PAYMENT: CycleStatus.PAYMENT_RECORDED,
        CycleStatus.APPROVED: CycleStatus.APPROVED,
        CycleStatus.INVOICE_UPLOADED: CycleStatus.INVOICE_UPLOADED,
    },
    CycleAction.APPROVE: {
        CycleStatus.PENDING_APPROVAL: CycleStatus.APPROVED,
        CycleStatus.PAYMENT_RECORDED: CycleStatus.APPROVED,
    },
    CycleAction.REJECT: {
        CycleStatus.PENDING_APPROVAL: CycleStatus.REJECTED,
        CycleStatus.PAYMENT_RECORDED: CycleStatus.REJECTED,
    },
    CycleAction.UPLOAD_INVOICE: {
        CycleStatus.APPROVED: CycleStatus.INVOICE_UPLOADED,
        CycleStatus.PAYMENT_RECORDED: CycleStatus.INVOICE_UPLOADED,
    },
    CycleAction.COMPLETE: {CycleStatus.INVOICE_UPLOADED: CycleStatus.COMPLETED},
    CycleAction.CANCEL: {
        CycleStatus.PENDING_PAYMENT: CycleStatus.CANCELLED,
        CycleStatus.PAYMENT_RECORDED: CycleStatus.CANCELLED,
        CycleStatus.PENDING_APPROVAL: CycleStatus.CANCELLED,
    },
}

TERMINAL_CYCLE_STATUSES = frozenset({CycleStatus.COMPLETED, CycleStatus.REJECTED, CycleStatus.CANCELLED})

LEGACY_CYCLE_STATUS: dict[str, CycleStatus] = {
    "PENDING": CycleStatus.PENDING_APPROVAL,
    "APPROVED": CycleStatus.APPROVED,
    "DECLINED": CycleStatus.REJECTED,
    "PAID": CycleStatus.PAYMENT_RECORDED,
}


def canonical_cycle_status(value: str | CycleStatus) -> CycleStatus:
    if isinstance(value, CycleStatus):
        return value
    if value in LEGACY_CYCLE_STATUS:
        return LEGACY_CYCLE_STATUS[value]
    return CycleStatus(value)


def next_subscription_status(action: SubscriptionAction, current: SubscriptionStatus) -> SubscriptionStatus:
    target = SUBSCRIPTION_TRANSITIONS[action].get(current)
    if target is None:
        verb = {
            SubscriptionAction.APPROVE: "approved",
            SubscriptionAction.REJECT: "rejected",
            SubscriptionAction.CANCEL: "cancelled",
        }[action]
        raise InvalidStateError(f"Subscription cannot be {verb}. Current status: {current.value}")
    return target


def next_cycle_status(action: CycleAction, current: str | CycleStatus) -> CycleStatus:
    status = canonical_cycle_status(current)
    target = CYCLE_TRANSITIONS[action].get(status)
    if target is None:
        raise InvalidStateError(f"Cannot {action.value} payment cycle with status: {status.value}")
    return target


def is_terminal(status: str | CycleStatus) -> bool:
    return canonical_cycle_status(status) in TERMINAL_CYCLE_STATUSES
