from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RiskLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    MINIMAL = "MINIMAL"
    UNKNOWN = "UNKNOWN"  # No usable source data


# Higher rank = more severe
RISK_ORDER: dict[str, int] = {
    RiskLevel.CRITICAL.value: 5,
    RiskLevel.HIGH.value: 4,
    RiskLevel.MEDIUM.value: 3,
    RiskLevel.LOW.value: 2,
    RiskLevel.MINIMAL.value: 1,
    RiskLevel.UNKNOWN.value: 0,
}

# Band score used by the composite crisis score
RISK_BAND_SCORE: dict[str, int] = {
    RiskLevel.CRITICAL.value: 100,
    RiskLevel.HIGH.value: 75,
    RiskLevel.MEDIUM.value: 50,
    RiskLevel.LOW.value: 25,
}


def risk_rank(level: Optional[str]) -> int:
    return RISK_ORDER.get(str(level or "").upper(), 0)


def risk_from_displacement(total_displaced: int) -> str:
    """Band a displaced-population total."""
    if total_displaced > 5_000_000:
        return RiskLevel.CRITICAL.value
    if total_displaced > 1_000_000:
        return RiskLevel.HIGH.value
    if total_displaced > 100_000:
        return RiskLevel.MEDIUM.value
    return RiskLevel.LOW.value


class PlanPriority(str, Enum):
    EMERGENCY = "EMERGENCY"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class PlanRequest(BaseModel):
    """Body of POST /api/crisis/{id}/plan"""

    priority: PlanPriority = PlanPriority.HIGH
    timeline: str = Field(default="24 months", max_length=50)
    focus: list[str] = Field(default_factory=list, max_length=10)
    population: Optional[int] = Field(default=None, ge=1)


class NotificationType(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    INFO = "info"
    SYSTEM = "system"


class NotificationCategory(str, Enum):
    CRISIS = "crisis"
    AI = "ai"
    SYSTEM = "system"
    RESPONSE = "response"


class Notification(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    country: Optional[str] = None
    flag: Optional[str] = None
    timestamp: str
    read: bool = False
    actionRequired: bool = False
    category: NotificationCategory
    priority: int = Field(ge=1, le=5)  # 5 = highest
