from .crisis import (
    RiskLevel,
    RISK_ORDER,
    RISK_BAND_SCORE,
    risk_rank,
    risk_from_displacement,
    PlanPriority,
    PlanRequest,
    Notification,
    NotificationType,
    NotificationCategory,
)

__all__ = [
    "RiskLevel",
    "RISK_ORDER",
    "RISK_BAND_SCORE",
    "risk_rank",
    "risk_from_displacement",
    "PlanPriority",
    "PlanRequest",
    "Notification",
    "NotificationType",
    "NotificationCategory",
]
