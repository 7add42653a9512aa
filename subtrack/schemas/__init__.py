from subtrack.schemas import (
    audit,
    auth,
    common,
    notification,
    organization,
    payment_cycle,
    subscription,
    user,
)

__all__ = [
    "audit",
    "auth",
    "common",
    "notification",
    "organization",
    "payment_cycle",
    "subscription",
    "user",
]
