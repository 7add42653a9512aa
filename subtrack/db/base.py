# noqa: F401 to ensure models are imported for metadata
from subtrack.models.audit import AuditLog, AuthLog
from subtrack.models.notification import UserNotification
from subtrack.models.organization import Department, Location, Product, SubscriptionSequence, Vendor
from subtrack.models.payment_cycle import PaymentCycle
from subtrack.models.subscription import Subscription, SubscriptionApproval, SubscriptionFile
from subtrack.models.user import HodDepartment, PocDepartmentAccess, User

__all__ = [
    "AuditLog",
    "AuthLog",
    "UserNotification",
    "Department",
    "Location",
    "Product",
    "SubscriptionSequence",
    "Vendor",
    "PaymentCycle",
    "Subscription",
    "SubscriptionApproval",
    "SubscriptionFile",
    "HodDepartment",
    "PocDepartmentAccess",
    "User",
]
