from .user import User, UserRole
from .plan import TradingPlan
from .payment import Payment, PaymentStatus
from .challenge import ChallengeStatus, TradingHistory, UserChallenge
from .notification import Notification, NotificationType

__all__ = [
    "User",
    "UserRole",
    "TradingPlan",
    "Payment",
    "PaymentStatus",
    "UserChallenge",
    "ChallengeStatus",
    "TradingHistory",
    "Notification",
    "NotificationType",
]
