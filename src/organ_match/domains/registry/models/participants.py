"""
Registry domain models: donors and recipients
"""

import re
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ....core.clock import utcnow
from ....core.pagination import PaginationInfo
from ...matching.services.compatibility import BLOOD_TYPES

DONOR_ID_PREFIX = "donor_"
RECIPIENT_ID_PREFIX = "recipient_"


def _normalize_blood_type(value: str) -> str:
    value = value.strip().upper()
    if value not in BLOOD_TYPES:
        raise ValueError(f"blood type must be one of: {', '.join(BLOOD_TYPES)}")
    return value


def _require_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


def _check_id_prefix(value: Optional[str], prefix: str) -> Optional[str]:
    # Donor and recipient ids must never collide, match keys rely on it
    if value is None:
        return value
    if not value.startswith(prefix) or len(value) == len(prefix):
        raise ValueError(f"id must start with '{prefix}'")
    return value


@dataclass
class Donor:
    """Internal donor entity for repositories and matching"""
    id: str
    name: str
    blood_type: str
    organs: List[str]
    age: Optional[int] = None
    location: str = ""
    wallet_address: Optional[str] = None
    medical_history: Optional[str] = None
    contact: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False
    priority: int = 0
    registration_date: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Donor":
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in doc.items() if key in names})


@dataclass
class Recipient:
    """Internal recipient entity for repositories and matching"""
    id: str
    name: str
    blood_type: str
    organ: str
    urgency: int
    age: Optional[int] = None
    location: str = ""
    wallet_address: Optional[str] = None
    medical_history: Optional[str] = None
    contact: Optional[str] = None
    is_active: bool = True
    priority: int = 0
    waiting_since: datetime = field(default_factory=utcnow)
    registration_date: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Recipient":
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in doc.items() if key in names})


class _InputModel(BaseModel):
    # Accept both snake_case and the camelCase used by existing clients
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True
    )


class DonorInput(_InputModel):
    """Donor registration payload"""
    id: Optional[str] = Field(None, description="Optional caller supplied identifier")
    name: str = Field(..., description="Donor name")
    wallet_address: Optional[str] = Field(None, description="External identity, unique per donor")
    blood_type: str = Field(..., description="One of the 8 canonical blood types")
    organs: List[str] = Field(..., description="Organs offered", min_length=1)
    age: Optional[int] = None
    location: str = Field(default="", description="City, Region")
    medical_history: Optional[str] = None
    contact: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False
    registration_date: Optional[datetime] = None

    @field_validator("id")
    @classmethod
    def check_id(cls, value: Optional[str]) -> Optional[str]:
        return _check_id_prefix(value, DONOR_ID_PREFIX)

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("blood_type")
    @classmethod
    def check_blood_type(cls, value: str) -> str:
        return _normalize_blood_type(value)

    @field_validator("organs")
    @classmethod
    def check_organs(cls, value: List[str]) -> List[str]:
        organs = []
        for organ in value:
            organ = organ.strip()
            if organ and organ not in organs:
                organs.append(organ)
        if not organs:
            raise ValueError("at least one organ is required")
        return organs


class RecipientInput(_InputModel):
    """Recipient registration payload"""
    id: Optional[str] = Field(None, description="Optional caller supplied identifier")
    name: str = Field(..., description="Recipient name")
    wallet_address: Optional[str] = Field(None, description="External identity, unique per recipient")
    blood_type: str = Field(..., description="One of the 8 canonical blood types")
    organ: str = Field(..., description="Organ needed")
    urgency: int = Field(..., ge=1, le=5, description="1 = low, 5 = emergency")
    age: Optional[int] = None
    location: str = Field(default="", description="City, Region")
    medical_history: Optional[str] = None
    contact: Optional[str] = None
    is_active: bool = True
    waiting_since: Optional[datetime] = None
    registration_date: Optional[datetime] = None

    @field_validator("id")
    @classmethod
    def check_id(cls, value: Optional[str]) -> Optional[str]:
        return _check_id_prefix(value, RECIPIENT_ID_PREFIX)

    @field_validator("name", "organ")
    @classmethod
    def check_text(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("blood_type")
    @classmethod
    def check_blood_type(cls, value: str) -> str:
        return _normalize_blood_type(value)


class DonorStatusUpdate(_InputModel):
    is_verified: Optional[bool] = None
    is_active: Optional[bool] = None


class RecipientStatusUpdate(_InputModel):
    is_active: bool


@dataclass
class DonorFilter:
    """AND-composed donor listing predicates"""
    blood_type: Optional[str] = None
    organ: Optional[str] = None
    location: Optional[str] = None
    is_verified: Optional[bool] = None
    is_active: Optional[bool] = None

    def matches(self, donor: Donor) -> bool:
        if self.blood_type and donor.blood_type != self.blood_type:
            return False
        if self.organ and self.organ not in donor.organs:
            return False
        if self.location and self.location.lower() not in (donor.location or "").lower():
            return False
        if self.is_verified is not None and donor.is_verified != self.is_verified:
            return False
        if self.is_active is not None and donor.is_active != self.is_active:
            return False
        return True

    def to_query(self) -> Dict[str, Any]:
        """MongoDB query equivalent of matches()"""
        query: Dict[str, Any] = {}
        if self.blood_type:
            query["blood_type"] = self.blood_type
        if self.organ:
            query["organs"] = self.organ
        if self.location:
            query["location"] = {"$regex": re.escape(self.location), "$options": "i"}
        if self.is_verified is not None:
            query["is_verified"] = self.is_verified
        if self.is_active is not None:
            query["is_active"] = self.is_active
        return query


@dataclass
class RecipientFilter:
    """AND-composed recipient listing predicates"""
    blood_type: Optional[str] = None
    organ: Optional[str] = None
    location: Optional[str] = None
    min_urgency: Optional[int] = None
    is_active: Optional[bool] = None

    def matches(self, recipient: Recipient) -> bool:
        if self.blood_type and recipient.blood_type != self.blood_type:
            return False
        if self.organ and recipient.organ != self.organ:
            return False
        if self.location and self.location.lower() not in (recipient.location or "").lower():
            return False
        if self.min_urgency is not None and recipient.urgency < self.min_urgency:
            return False
        if self.is_active is not None and recipient.is_active != self.is_active:
            return False
        return True

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if self.blood_type:
            query["blood_type"] = self.blood_type
        if self.organ:
            query["organ"] = self.organ
        if self.location:
            query["location"] = {"$regex": re.escape(self.location), "$options": "i"}
        if self.min_urgency is not None:
            query["urgency"] = {"$gte": self.min_urgency}
        if self.is_active is not None:
            query["is_active"] = self.is_active
        return query


class DonorResponse(BaseModel):
    """Donor response model"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    wallet_address: Optional[str] = None
    blood_type: str
    organs: List[str]
    age: Optional[int] = None
    location: str = ""
    medical_history: Optional[str] = None
    contact: Optional[str] = None
    is_active: bool
    is_verified: bool
    priority: int
    registration_date: datetime
    last_updated: datetime


class RecipientResponse(BaseModel):
    """Recipient response model"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    wallet_address: Optional[str] = None
    blood_type: str
    organ: str
    urgency: int
    age: Optional[int] = None
    location: str = ""
    medical_history: Optional[str] = None
    contact: Optional[str] = None
    is_active: bool
    priority: int
    waiting_since: datetime
    registration_date: datetime
    last_updated: datetime


class DonorListResponse(BaseModel):
    donors: List[DonorResponse]
    total: int
    pagination: PaginationInfo


class RecipientListResponse(BaseModel):
    recipients: List[RecipientResponse]
    total: int
    pagination: PaginationInfo
