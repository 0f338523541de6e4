"""
Matching domain models
"""

from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from ....core.clock import utcnow
from ....core.pagination import PaginationInfo
from ...registry.models.participants import Donor, Recipient, DonorResponse, RecipientResponse


class MatchStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed status changes; anything not listed is rejected
STATUS_TRANSITIONS = {
    MatchStatus.PENDING: frozenset({MatchStatus.APPROVED, MatchStatus.CANCELLED}),
    MatchStatus.APPROVED: frozenset({MatchStatus.COMPLETED}),
    MatchStatus.COMPLETED: frozenset(),
    MatchStatus.CANCELLED: frozenset(),
}


def can_transition(current: MatchStatus, new: MatchStatus) -> bool:
    return new in STATUS_TRANSITIONS[current]


def allowed_sources(new: MatchStatus) -> List[MatchStatus]:
    """Statuses from which a match may move to new"""
    return [status for status, targets in STATUS_TRANSITIONS.items() if new in targets]


class ScoringMode(str, Enum):
    """
    MATCHING is the schedule used to create persisted matches.
    DISPLAY is the looser schedule used to rank candidates in search views.
    """
    MATCHING = "matching"
    DISPLAY = "display"


@dataclass
class Compatibility:
    """Audit flags captured when the match is created"""
    blood_type: bool
    organ: bool
    location: bool
    age: bool


@dataclass
class Match:
    """Internal match entity"""
    id: str
    donor_id: str
    recipient_id: str
    organ: str
    blood_type: str
    match_score: int
    compatibility: Compatibility
    priority: int
    donor_name: str = ""
    recipient_name: str = ""
    status: MatchStatus = MatchStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def pair(self):
        return (self.donor_id, self.recipient_id)

    def to_dict(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc["status"] = self.status.value
        return doc

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Match":
        names = {f.name for f in fields(cls)}
        values = {key: value for key, value in doc.items() if key in names}
        compatibility = values.get("compatibility")
        if isinstance(compatibility, dict):
            values["compatibility"] = Compatibility(**compatibility)
        values["status"] = MatchStatus(values.get("status", MatchStatus.PENDING))
        return cls(**values)


@dataclass
class MatchFilter:
    """AND-composed match listing predicates"""
    blood_type: Optional[str] = None
    organ: Optional[str] = None
    status: Optional[MatchStatus] = None
    min_urgency: Optional[int] = None
    participant_id: Optional[str] = None
    # Resolved from min_urgency by the query layer; None means unrestricted
    recipient_ids: Optional[Set[str]] = None

    def matches(self, match: Match) -> bool:
        if self.blood_type and match.blood_type != self.blood_type:
            return False
        if self.organ and match.organ != self.organ:
            return False
        if self.status and match.status != self.status:
            return False
        if self.participant_id and self.participant_id not in match.pair:
            return False
        if self.recipient_ids is not None and match.recipient_id not in self.recipient_ids:
            return False
        return True

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if self.blood_type:
            query["blood_type"] = self.blood_type
        if self.organ:
            query["organ"] = self.organ
        if self.status:
            query["status"] = self.status.value
        if self.participant_id:
            query["$or"] = [
                {"donor_id": self.participant_id},
                {"recipient_id": self.participant_id}
            ]
        if self.recipient_ids is not None:
            query["recipient_id"] = {"$in": sorted(self.recipient_ids)}
        return query


def match_sort_key(match: Match):
    """Priority descending, then match score descending"""
    return (-match.priority, -match.match_score)


@dataclass
class DonorRegistered:
    """Command handed from registration to the matching orchestrator"""
    donor: Donor


@dataclass
class RecipientRegistered:
    recipient: Recipient


RegistrationEvent = Union[DonorRegistered, RecipientRegistered]


@dataclass
class RankedCandidate:
    """Search view ranking entry"""
    participant: Union[Donor, Recipient]
    score: int


@dataclass
class MatchStats:
    total_donors: int = 0
    active_donors: int = 0
    verified_donors: int = 0
    total_recipients: int = 0
    active_recipients: int = 0
    total_matches: int = 0
    pending_matches: int = 0
    completed_matches: int = 0
    successful_transplants: int = 0
    average_match_score: float = 0.0


class CompatibilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    blood_type: bool
    organ: bool
    location: bool
    age: bool


class MatchResponse(BaseModel):
    """Match response model"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    donor_id: str
    recipient_id: str
    donor_name: str = ""
    recipient_name: str = ""
    organ: str
    blood_type: str
    match_score: int
    compatibility: CompatibilityResponse
    priority: int
    status: MatchStatus
    created_at: datetime
    last_updated: datetime


class MatchListResponse(BaseModel):
    matches: List[MatchResponse]
    total: int
    pagination: PaginationInfo


class MatchStatusUpdate(BaseModel):
    status: MatchStatus = Field(..., description="Target status")


class RefreshResponse(BaseModel):
    total_matches: int
    processing_time_ms: float


class StatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_donors: int
    active_donors: int
    verified_donors: int
    total_recipients: int
    active_recipients: int
    total_matches: int
    pending_matches: int
    completed_matches: int
    successful_transplants: int
    average_match_score: float


class RankedDonorResponse(BaseModel):
    donor: DonorResponse
    score: int


class RankedRecipientResponse(BaseModel):
    recipient: RecipientResponse
    score: int
