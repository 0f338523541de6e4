"""
Intrinsic donor and recipient priority

Both functions depend only on the record itself. Age bands are exclusive:
the first band that applies wins. A missing age scores as the oldest band.
"""

from datetime import datetime
from typing import Optional

from ....core.clock import utcnow, as_utc

DONOR_BASE = 100
DONOR_CAP = 200
DONOR_AGE_BANDS = ((30, 20), (45, 10), (60, 5))
POINTS_PER_ORGAN = 5
HEALTHY_BONUS = 15

RECIPIENT_BASE = 100
RECIPIENT_CAP = 300
URGENCY_POINTS = 30
RECIPIENT_AGE_BANDS = ((18, 25), (35, 15), (50, 10))
DAYS_PER_WAITING_POINT = 30


def _age_points(age, bands) -> int:
    if not isinstance(age, int):
        return 0
    for upper, points in bands:
        if age <= upper:
            return points
    return 0


def calculate_donor_priority(donor) -> int:
    priority = DONOR_BASE
    priority += _age_points(donor.age, DONOR_AGE_BANDS)
    priority += len(donor.organs or ()) * POINTS_PER_ORGAN

    history = donor.medical_history
    if not history or "healthy" in history.lower():
        priority += HEALTHY_BONUS

    return min(priority, DONOR_CAP)


def waiting_months(waiting_since: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Full 30-day periods waited; 0 for missing or future dates"""
    if waiting_since is None:
        return 0
    now = as_utc(now or utcnow())
    days = (now - as_utc(waiting_since)).days
    if days <= 0:
        return 0
    return days // DAYS_PER_WAITING_POINT


def calculate_recipient_priority(recipient, now: Optional[datetime] = None) -> int:
    priority = RECIPIENT_BASE
    urgency = recipient.urgency if isinstance(recipient.urgency, int) else 0
    priority += urgency * URGENCY_POINTS
    priority += _age_points(recipient.age, RECIPIENT_AGE_BANDS)
    priority += waiting_months(recipient.waiting_since, now)

    return min(priority, RECIPIENT_CAP)
