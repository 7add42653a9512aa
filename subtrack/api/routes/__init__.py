from . import admin, audit, auth, departments, health, locations, master_data, notifications, payment_cycles, subscriptions, users

__all__ = [
    "admin",
    "audit",
    "auth",
    "departments",
    "health",
    "locations",
    "master_data",
    "notifications",
    "payment_cycles",
    "subscriptions",
    "users",
]
