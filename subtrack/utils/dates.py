import calendar
from datetime import date, timedelta

from subtrack.models.subscription import BillingFrequency

CYCLE_LENGTH_DAYS: dict[BillingFrequency, int] = {
    BillingFrequency.MONTHLY: 30,
    BillingFrequency.QUARTERLY: 90,
    BillingFrequency.YEARLY: 365,
    BillingFrequency.USAGE_BASED: 30,
}


def fiscal_year(value: date) -> int:
    """Two-digit April-March fiscal year: 2026-04-01 belongs to FY27."""
    year = value.year - 2000
    return year + 1 if value.month >= 4 else year


def invoice_deadline(cycle_end_date: date) -> date:
    last_day = calendar.monthrange(cycle_end_date.year, cycle_end_date.month)[1]
    return cycle_end_date.replace(day=last_day)


def next_cycle_dates(previous_end: date, frequency: BillingFrequency) -> tuple[date, date]:
    start = previous_end + timedelta(days=1)
    end = start + timedelta(days=CYCLE_LENGTH_DAYS[frequency] - 1)
    return start, end
