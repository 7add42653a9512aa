from datetime import date, timedelta

from sqlmodel import Session, select

from subtrack.core.config import settings
from subtrack.core.errors import ServiceError
from subtrack.core.logging_setup import logger
from subtrack.models.notification import NotificationType, UserNotification
from subtrack.models.payment_cycle import CycleStatus, PaymentCycle, PocApprovalStatus
from subtrack.models.subscription import Subscription, SubscriptionStatus
from subtrack.models.user import PocDepartmentAccess
from subtrack.schemas.payment_cycle import JobReport
from subtrack.services.notification import NotificationService
from subtrack.services.payment_cycle import AUTO_CANCEL_REASON, PaymentCycleService
from subtrack.services.transitions import is_terminal
from subtrack.utils.dates import next_cycle_dates

# Scheduled maintenance for payment cycles, run from scripts/cycle_jobs.py


def create_due_renewal_cycles(session: Session, today: date) -> JobReport:
    """Open the next cycle, awaiting POC approval, for renewals starting soon."""
    report = JobReport()
    service = PaymentCycleService(session)
    subscriptions = session.exec(
        select(Subscription).where(Subscription.status == SubscriptionStatus.ACTIVE)
    ).all()
    for subscription in subscriptions:
        report.checked += 1
        latest = session.exec(
            select(PaymentCycle)
            .where(PaymentCycle.subscription_id == subscription.id)
            .order_by(PaymentCycle.cycle_number.desc())
        ).first()
        if latest is None or not is_terminal(latest.cycle_status):
            continue
        start, end = next_cycle_dates(latest.cycle_end_date, subscription.billing_frequency)
        days_until = (start - today).days
        if not 0 <= days_until <= settings.renewal_reminder_days:
            continue
        try:
            cycle = service.open_cycle(subscription, start, end, CycleStatus.PENDING_APPROVAL)
        except ServiceError as exc:
            logger.warning("Renewal cycle for %s not created: %s", subscription.subscription_code, exc.message)
            report.errors.append(f"{subscription.subscription_code}: {exc.message}")
            continue
        service.audit.record_event(
            "payment_cycle.renewal.create",
            "payment_cycle",
            cycle.id,
            None,
            {"subscription_id": str(subscription.id), "cycle_number": cycle.cycle_number},
        )
        report.changed += 1
    logger.info("Renewal job: %d checked, %d created, %d errors", report.checked, report.changed, len(report.errors))
    return report


def cancel_overdue_invoices(session: Session, today: date) -> JobReport:
    """Cancel paid cycles whose invoice was not uploaded by the deadline."""
    report = JobReport()
    service = PaymentCycleService(session)
    overdue_ids = session.exec(
        select(PaymentCycle.id).where(
            PaymentCycle.cycle_status == CycleStatus.PAYMENT_RECORDED,
            PaymentCycle.invoice_file_id.is_(None),
            PaymentCycle.invoice_deadline < today,
        )
    ).all()
    for cycle_id in overdue_ids:
        report.checked += 1
        try:
            service.cancel_cycle(None, cycle_id, AUTO_CANCEL_REASON)
        except ServiceError as exc:
            logger.warning("Overdue cycle %s not cancelled: %s", cycle_id, exc.message)
            report.errors.append(f"{cycle_id}: {exc.message}")
            continue
        report.changed += 1
    logger.info("Overdue invoice job: %d checked, %d cancelled", report.checked, report.changed)
    return report


def reminder_text(tool_name: str, days_remaining: int) -> tuple[str, str]:
    """Title and message for a renewal reminder, escalating as the start date nears."""
    if days_remaining <= 0:
        return "Urgent: Renewal approval overdue", f"{tool_name} renewal requires your immediate approval"
    if days_remaining <= 2:
        return (
            "Urgent: Renewal approval needed",
            f"{tool_name} renewal requires your approval ({days_remaining} day(s) remaining)",
        )
    title = "Reminder: Renewal approval pending" if days_remaining <= 5 else "Renewal approval pending"
    return title, f"{tool_name} renewal requires your approval ({days_remaining} days remaining)"


def send_renewal_reminders(session: Session, today: date) -> JobReport:
    """Remind department POCs about renewals still waiting for their approval.

    Covers cycles starting within the reminder window, overdue ones included.
    Each POC gets at most one reminder per cycle per run date.
    """
    report = JobReport()
    notifier = NotificationService(session)
    window_end = today + timedelta(days=settings.renewal_reminder_days)
    rows = session.exec(
        select(PaymentCycle, Subscription)
        .join(Subscription, Subscription.id == PaymentCycle.subscription_id)
        .where(
            PaymentCycle.cycle_status == CycleStatus.PENDING_APPROVAL,
            PaymentCycle.poc_approval_status == PocApprovalStatus.PENDING,
            PaymentCycle.cycle_start_date <= window_end,
        )
        .order_by(PaymentCycle.cycle_start_date)
    ).all()
    run_date = today.isoformat()
    for cycle, subscription in rows:
        report.checked += 1
        poc_ids = session.exec(
            select(PocDepartmentAccess.poc_id).where(PocDepartmentAccess.department_id == subscription.department_id)
        ).all()
        already_sent = {
            item.recipient_id
            for item in session.exec(
                select(UserNotification).where(
                    UserNotification.cycle_id == cycle.id,
                    UserNotification.event_type == NotificationType.RENEWAL_REMINDER,
                )
            ).all()
            if (item.payload or {}).get("reminder_date") == run_date
        }
        recipients = [poc_id for poc_id in poc_ids if poc_id not in already_sent]
        if not recipients:
            continue
        days_remaining = (cycle.cycle_start_date - today).days
        title, message = reminder_text(subscription.tool_name, days_remaining)
        sent = notifier.notify(
            recipients,
            NotificationType.RENEWAL_REMINDER,
            title=title,
            message=message,
            subscription=subscription,
            cycle=cycle,
            payload={"reminder_date": run_date, "days_remaining": days_remaining},
        )
        if sent == 0:
            report.errors.append(f"{subscription.subscription_code}: reminder not stored")
            continue
        report.changed += sent
    logger.info("Reminder job: %d cycles checked, %d reminders sent", report.checked, report.changed)
    return report
