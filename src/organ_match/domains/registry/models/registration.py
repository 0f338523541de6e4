"""
Registration request/response models
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .participants import Donor, Recipient, DonorResponse, RecipientResponse
from ...matching.models.matching import Match, MatchResponse


@dataclass
class RegistrationResult:
    """Stored participant plus the matches its registration created"""
    participant: Union[Donor, Recipient]
    new_matches: List[Match] = field(default_factory=list)


class DonorRegistrationResponse(BaseModel):
    donor: DonorResponse
    new_matches: int
    matches: List[MatchResponse]


class RecipientRegistrationResponse(BaseModel):
    recipient: RecipientResponse
    new_matches: int
    matches: List[MatchResponse]


class RecordWithCorrelationId(BaseModel):
    """Registration payload with correlation ID for tracking"""
    correlation_id: str = Field(..., description="Unique ID to correlate request/response")
    data: Dict[str, Any] = Field(..., description="Donor or recipient registration fields")


class BulkRegistrationRequest(BaseModel):
    """Bulk import request with correlation IDs"""
    records: List[RecordWithCorrelationId] = Field(
        ...,
        description="Records to register",
        min_length=1
    )


class BulkRegistrationResult(BaseModel):
    """Single registration result with correlation ID"""
    correlation_id: str = Field(..., description="Correlation ID from request")
    participant_id: Optional[str] = Field(None, description="Assigned donor or recipient ID")
    status: str = Field(..., description="success or error")
    new_matches: int = Field(default=0, description="Matches created by this registration")
    error_code: Optional[str] = Field(None, description="Error code if failed")
    error_message: Optional[str] = Field(None, description="Error details if failed")


class BulkRegistrationResponse(BaseModel):
    """Bulk import response"""
    request_id: str = Field(..., description="Unique request ID for tracking")
    total_records: int = Field(..., description="Total records processed")
    successful: int = Field(..., description="Successfully registered records")
    failed: int = Field(..., description="Failed records")
    results: List[BulkRegistrationResult] = Field(..., description="Individual results")
    total_processing_time_ms: float = Field(..., description="Total processing time")
