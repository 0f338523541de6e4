"""
Donor/recipient compatibility scoring

Two point schedules exist. ScoringMode.MATCHING creates persisted matches;
ScoringMode.DISPLAY ranks candidates in the interactive search view. Both are
capped at 100 and return 0 as soon as blood type or organ rules fail.
"""

from dataclasses import dataclass
from typing import Optional

from ..models.matching import Compatibility, ScoringMode
from .compatibility import is_blood_compatible, has_organ


@dataclass(frozen=True)
class PointSchedule:
    blood_exact: int
    blood_compatible: int
    organ: int
    location_exact: int
    location_region: int
    age_close: int
    age_near: int
    urgency_multiplier: int
    organ_ignore_case: bool = False


SCHEDULES = {
    ScoringMode.MATCHING: PointSchedule(
        blood_exact=40,
        blood_compatible=30,
        organ=30,
        location_exact=15,
        location_region=8,
        age_close=10,
        age_near=5,
        urgency_multiplier=1,
    ),
    ScoringMode.DISPLAY: PointSchedule(
        blood_exact=100,
        blood_compatible=80,
        organ=100,
        location_exact=20,
        location_region=10,
        age_close=10,
        age_near=5,
        urgency_multiplier=6,
        organ_ignore_case=True,
    ),
}

MAX_SCORE = 100
AGE_CLOSE_YEARS = 10
AGE_NEAR_YEARS = 20


def region_of(location) -> Optional[str]:
    """
    Region token of a "City, Region" location.

    This is the segment after the first comma, trimmed. Locations without a
    region have none, so they never count as a regional match.
    """
    if not isinstance(location, str):
        return None
    parts = location.split(",")
    if len(parts) < 2:
        return None
    region = parts[1].strip()
    return region or None


def same_location(donor, recipient) -> bool:
    return bool(donor.location) and donor.location == recipient.location


def same_region(donor, recipient) -> bool:
    region = region_of(donor.location)
    return region is not None and region == region_of(recipient.location)


def age_difference(donor, recipient) -> Optional[int]:
    if not isinstance(donor.age, int) or not isinstance(recipient.age, int):
        return None
    return abs(donor.age - recipient.age)


def score(donor, recipient, mode: ScoringMode = ScoringMode.MATCHING) -> int:
    """Compatibility score in [0, 100] for a donor/recipient pair"""
    points = SCHEDULES[ScoringMode(mode)]
    total = 0

    if donor.blood_type == recipient.blood_type and is_blood_compatible(donor.blood_type, recipient.blood_type):
        total += points.blood_exact
    elif is_blood_compatible(donor.blood_type, recipient.blood_type):
        total += points.blood_compatible
    else:
        return 0

    if not has_organ(donor, recipient.organ, ignore_case=points.organ_ignore_case):
        return 0
    total += points.organ

    if same_location(donor, recipient):
        total += points.location_exact
    elif same_region(donor, recipient):
        total += points.location_region

    diff = age_difference(donor, recipient)
    if diff is not None:
        if diff <= AGE_CLOSE_YEARS:
            total += points.age_close
        elif diff <= AGE_NEAR_YEARS:
            total += points.age_near

    urgency = recipient.urgency if isinstance(recipient.urgency, int) else 0
    total += max(urgency, 0) * points.urgency_multiplier

    return min(total, MAX_SCORE)


def evaluate_compatibility(donor, recipient) -> Compatibility:
    """Four-flag audit record stored on a new match"""
    diff = age_difference(donor, recipient)
    return Compatibility(
        blood_type=is_blood_compatible(donor.blood_type, recipient.blood_type),
        organ=has_organ(donor, recipient.organ),
        location=same_location(donor, recipient),
        age=diff is not None and diff <= AGE_NEAR_YEARS,
    )
