from subtrack.services.access import AccessService
from subtrack.services.audit import AuditService
from subtrack.services.auth import AuthService
from subtrack.services.files import SubscriptionFileService
from subtrack.services.notification import NotificationService
from subtrack.services.organization import OrganizationService
from subtrack.services.payment_cycle import PaymentCycleService
from subtrack.services.subscription import SubscriptionService
from subtrack.services.user import UserService

__all__ = [
    "AccessService",
    "AuditService",
    "AuthService",
    "SubscriptionFileService",
    "NotificationService",
    "OrganizationService",
    "PaymentCycleService",
    "SubscriptionService",
    "UserService",
]
