from datetime import date

import pytest

from subtrack.core.errors import InvalidStateError
from subtrack.models.payment_cycle import CycleStatus
from subtrack.models.subscription import BillingFrequency, SubscriptionStatus
from subtrack.services.transitions import (
    CycleAction,
    SubscriptionAction,
    canonical_cycle_status,
    is_terminal,
    next_cycle_status,
    next_subscription_status,
)
from subtrack.utils.dates import fiscal_year, invoice_deadline, next_cycle_dates


def test_subscription_happy_paths() -> None:
    assert next_subscription_status(SubscriptionAction.APPROVE, SubscriptionStatus.PENDING) == SubscriptionStatus.ACTIVE
    assert next_subscription_status(SubscriptionAction.REJECT, SubscriptionStatus.PENDING) == SubscriptionStatus.REJECTED
    assert next_subscription_status(SubscriptionAction.CANCEL, SubscriptionStatus.ACTIVE) == SubscriptionStatus.CANCELLED


@pytest.mark.parametrize(
    "status",
    [SubscriptionStatus.ACTIVE, SubscriptionStatus.REJECTED, SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED],
)
def test_only_pending_subscriptions_can_be_approved(status) -> None:
    with pytest.raises(InvalidStateError) as excinfo:
        next_subscription_status(SubscriptionAction.APPROVE, status)
    assert excinfo.value.message == f"Subscription cannot be approved. Current status: {status.value}"


@pytest.mark.parametrize(
    ("action", "current", "target"),
    [
        (CycleAction.RECORD_PAYMENT, CycleStatus.PENDING_PAYMENT, CycleStatus.PAYMENT_RECORDED),
        (CycleAction.RECORD_PAYMENT, CycleStatus.APPROVED, CycleStatus.APPROVED),
        (CycleAction.APPROVE, CycleStatus.PENDING_APPROVAL, CycleStatus.APPROVED),
        (CycleAction.APPROVE, CycleStatus.PAYMENT_RECORDED, CycleStatus.APPROVED),
        (CycleAction.REJECT, CycleStatus.PAYMENT_RECORDED, CycleStatus.REJECTED),
        (CycleAction.UPLOAD_INVOICE, CycleStatus.APPROVED, CycleStatus.INVOICE_UPLOADED),
        (CycleAction.COMPLETE, CycleStatus.INVOICE_UPLOADED, CycleStatus.COMPLETED),
        (CycleAction.CANCEL, CycleStatus.PENDING_APPROVAL, CycleStatus.CANCELLED),
    ],
)
def test_cycle_transitions(action, current, target) -> None:
    assert next_cycle_status(action, current) == target


@pytest.mark.parametrize("status", [CycleStatus.APPROVED, CycleStatus.INVOICE_UPLOADED, CycleStatus.COMPLETED])
def test_cancel_refused_once_approved(status) -> None:
    with pytest.raises(InvalidStateError) as excinfo:
        next_cycle_status(CycleAction.CANCEL, status)
    assert excinfo.value.message == f"Cannot cancel payment cycle with status: {status.value}"


def test_legacy_statuses_read_as_canonical() -> None:
    assert canonical_cycle_status("PENDING") == CycleStatus.PENDING_APPROVAL
    assert canonical_cycle_status("DECLINED") == CycleStatus.REJECTED
    assert canonical_cycle_status("PAID") == CycleStatus.PAYMENT_RECORDED
    assert next_cycle_status(CycleAction.APPROVE, "PAID") == CycleStatus.APPROVED
    assert is_terminal("DECLINED")
    assert not is_terminal(CycleStatus.PAYMENT_RECORDED)
    with pytest.raises(ValueError):
        canonical_cycle_status("BOGUS")


def test_fiscal_year_starts_in_april() -> None:
    assert fiscal_year(date(2026, 3, 31)) == 26
    assert fiscal_year(date(2026, 4, 1)) == 27


def test_invoice_deadline_is_end_of_month() -> None:
    assert invoice_deadline(date(2026, 1, 15)) == date(2026, 1, 31)
    assert invoice_deadline(date(2024, 2, 3)) == date(2024, 2, 29)


def test_next_cycle_dates_by_frequency() -> None:
    assert next_cycle_dates(date(2026, 1, 31), BillingFrequency.MONTHLY) == (date(2026, 2, 1), date(2026, 3, 2))
    start, end = next_cycle_dates(date(2026, 3, 31), BillingFrequency.YEARLY)
    assert start == date(2026, 4, 1)
    assert (end - start).days == 364
