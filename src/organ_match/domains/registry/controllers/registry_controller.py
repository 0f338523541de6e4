"""
Registry controller - HTTP endpoint handlers for donors and recipients
"""

from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query, Path, Depends
import logging

from ..models.participants import (
    DonorInput,
    RecipientInput,
    DonorStatusUpdate,
    RecipientStatusUpdate,
    DonorFilter,
    RecipientFilter,
    DonorResponse,
    RecipientResponse,
    DonorListResponse,
    RecipientListResponse,
)
from ..models.registration import (
    RegistrationResult,
    DonorRegistrationResponse,
    RecipientRegistrationResponse,
    BulkRegistrationRequest,
    BulkRegistrationResponse,
)
from ..services.registration_service import RegistrationService
from ...matching.models.matching import (
    MatchResponse,
    RankedDonorResponse,
    RankedRecipientResponse,
    ScoringMode,
)
from ...matching.services.compatibility import BLOOD_TYPES
from ...matching.services.query_service import QueryService
from ....core.dependencies import get_registration_service, get_query_service
from ....core.exceptions import OrganMatchError, ValidationError


logger = logging.getLogger(__name__)

donor_router = APIRouter(prefix="/api/donors", tags=["donors"])
recipient_router = APIRouter(prefix="/api/recipients", tags=["recipients"])


def _donor_registration(result: RegistrationResult) -> DonorRegistrationResponse:
    return DonorRegistrationResponse(
        donor=DonorResponse.model_validate(result.participant),
        new_matches=len(result.new_matches),
        matches=[MatchResponse.model_validate(match) for match in result.new_matches]
    )


def _recipient_registration(result: RegistrationResult) -> RecipientRegistrationResponse:
    return RecipientRegistrationResponse(
        recipient=RecipientResponse.model_validate(result.participant),
        new_matches=len(result.new_matches),
        matches=[MatchResponse.model_validate(match) for match in result.new_matches]
    )


# Donors

@donor_router.post("", response_model=DonorRegistrationResponse, status_code=201)
async def register_donor(
    request: DonorInput,
    service: RegistrationService = Depends(get_registration_service)
) -> DonorRegistrationResponse:
    """
    Register a donor

    The donor is stored first and then matched against every active
    recipient. The response carries the matches created by this call.
    """
    try:
        result = await service.register_donor(request)
        return _donor_registration(result)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error registering donor: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@donor_router.post("/bulk", response_model=BulkRegistrationResponse)
async def bulk_register_donors(
    request: BulkRegistrationRequest,
    service: RegistrationService = Depends(get_registration_service)
) -> BulkRegistrationResponse:
    """
    Bulk donor import with correlation IDs

    Each record succeeds or fails on its own; failures are reported with
    their error code next to the caller's correlation ID.
    """
    try:
        return await service.bulk_register_donors(request.records)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error in bulk donor registration: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@donor_router.get("", response_model=DonorListResponse)
async def list_donors(
    blood_type: Optional[str] = Query(None, description="Exact blood type"),
    organ: Optional[str] = Query(None, description="Offered organ"),
    location: Optional[str] = Query(None, description="Case-insensitive location substring"),
    verified: Optional[bool] = Query(None, description="Verification flag"),
    active: Optional[bool] = Query(None, description="Active flag"),
    limit: Optional[int] = Query(None, description="Page size"),
    offset: int = Query(default=0, description="Skip records"),
    service: QueryService = Depends(get_query_service)
) -> DonorListResponse:
    """List donors by priority, highest first"""
    try:
        donor_filter = DonorFilter(
            blood_type=blood_type,
            organ=organ,
            location=location,
            is_verified=verified,
            is_active=active
        )
        page = await service.list_donors(donor_filter, limit=limit, offset=offset)

        return DonorListResponse(
            donors=[DonorResponse.model_validate(donor) for donor in page.items],
            total=page.total,
            pagination=page.pagination()
        )

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error listing donors: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@donor_router.get("/compatible", response_model=List[DonorResponse])
async def find_compatible_donors(
    blood_type: str = Query(..., description="Recipient blood type"),
    organ: str = Query(..., description="Needed organ"),
    service: QueryService = Depends(get_query_service)
) -> List[DonorResponse]:
    """Active, verified donors who can give the organ to this blood type"""
    try:
        if blood_type not in BLOOD_TYPES:
            raise ValidationError(
                f"Unknown blood type: {blood_type}",
                detail={"blood_type": blood_type, "allowed": list(BLOOD_TYPES)}
            )

        donors = await service.find_compatible_donors(blood_type, organ)
        return [DonorResponse.model_validate(donor) for donor in donors]

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error finding compatible donors: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@donor_router.get("/{donor_id}", response_model=DonorResponse)
async def get_donor(
    donor_id: str = Path(..., description="Donor ID"),
    service: QueryService = Depends(get_query_service)
) -> DonorResponse:
    try:
        donor = await service.get_donor(donor_id)
        return DonorResponse.model_validate(donor)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error fetching donor {donor_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@donor_router.patch("/{donor_id}/status", response_model=DonorRegistrationResponse)
async def update_donor_status(
    request: DonorStatusUpdate,
    donor_id: str = Path(..., description="Donor ID"),
    service: RegistrationService = Depends(get_registration_service)
) -> DonorRegistrationResponse:
    """
    Verify or withdraw a donor

    A donor that becomes active and verified is matched immediately.
    """
    try:
        result = await service.update_donor_status(
            donor_id,
            is_verified=request.is_verified,
            is_active=request.is_active
        )
        return _donor_registration(result)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error updating donor {donor_id} status: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@donor_router.get("/{donor_id}/ranked-recipients", response_model=List[RankedRecipientResponse])
async def rank_recipients_for_donor(
    donor_id: str = Path(..., description="Donor ID"),
    mode: Optional[ScoringMode] = Query(None, description="Scoring schedule"),
    limit: Optional[int] = Query(None, description="Maximum results"),
    service: QueryService = Depends(get_query_service)
) -> List[RankedRecipientResponse]:
    """Active recipients ranked by score against this donor"""
    try:
        ranked = await service.rank_recipients_for_donor(donor_id, mode=mode, limit=limit)
        return [
            RankedRecipientResponse(
                recipient=RecipientResponse.model_validate(candidate.participant),
                score=candidate.score
            )
            for candidate in ranked
        ]

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error ranking recipients for donor {donor_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# Recipients

@recipient_router.post("", response_model=RecipientRegistrationResponse, status_code=201)
async def register_recipient(
    request: RecipientInput,
    service: RegistrationService = Depends(get_registration_service)
) -> RecipientRegistrationResponse:
    """
    Register a recipient

    The recipient is stored first and then matched against every active,
    verified donor.
    """
    try:
        result = await service.register_recipient(request)
        return _recipient_registration(result)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error registering recipient: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@recipient_router.post("/bulk", response_model=BulkRegistrationResponse)
async def bulk_register_recipients(
    request: BulkRegistrationRequest,
    service: RegistrationService = Depends(get_registration_service)
) -> BulkRegistrationResponse:
    try:
        return await service.bulk_register_recipients(request.records)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error in bulk recipient registration: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@recipient_router.get("", response_model=RecipientListResponse)
async def list_recipients(
    blood_type: Optional[str] = Query(None, description="Exact blood type"),
    organ: Optional[str] = Query(None, description="Needed organ"),
    location: Optional[str] = Query(None, description="Case-insensitive location substring"),
    min_urgency: Optional[int] = Query(None, description="Minimum urgency"),
    active: Optional[bool] = Query(None, description="Active flag"),
    limit: Optional[int] = Query(None, description="Page size"),
    offset: int = Query(default=0, description="Skip records"),
    service: QueryService = Depends(get_query_service)
) -> RecipientListResponse:
    """List recipients by priority, highest first"""
    try:
        recipient_filter = RecipientFilter(
            blood_type=blood_type,
            organ=organ,
            location=location,
            min_urgency=min_urgency,
            is_active=active
        )
        page = await service.list_recipients(recipient_filter, limit=limit, offset=offset)

        return RecipientListResponse(
            recipients=[RecipientResponse.model_validate(recipient) for recipient in page.items],
            total=page.total,
            pagination=page.pagination()
        )

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error listing recipients: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@recipient_router.get("/{recipient_id}", response_model=RecipientResponse)
async def get_recipient(
    recipient_id: str = Path(..., description="Recipient ID"),
    service: QueryService = Depends(get_query_service)
) -> RecipientResponse:
    try:
        recipient = await service.get_recipient(recipient_id)
        return RecipientResponse.model_validate(recipient)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error fetching recipient {recipient_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@recipient_router.patch("/{recipient_id}/status", response_model=RecipientRegistrationResponse)
async def update_recipient_status(
    request: RecipientStatusUpdate,
    recipient_id: str = Path(..., description="Recipient ID"),
    service: RegistrationService = Depends(get_registration_service)
) -> RecipientRegistrationResponse:
    """Withdraw or reactivate a recipient"""
    try:
        result = await service.update_recipient_status(recipient_id, request.is_active)
        return _recipient_registration(result)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error updating recipient {recipient_id} status: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@recipient_router.get("/{recipient_id}/ranked-donors", response_model=List[RankedDonorResponse])
async def rank_donors_for_recipient(
    recipient_id: str = Path(..., description="Recipient ID"),
    mode: Optional[ScoringMode] = Query(None, description="Scoring schedule"),
    limit: Optional[int] = Query(None, description="Maximum results"),
    service: QueryService = Depends(get_query_service)
) -> List[RankedDonorResponse]:
    """Active donors ranked by score against this recipient"""
    try:
        ranked = await service.rank_donors_for_recipient(recipient_id, mode=mode, limit=limit)
        return [
            RankedDonorResponse(
                donor=DonorResponse.model_validate(candidate.participant),
                score=candidate.score
            )
            for candidate in ranked
        ]

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error ranking donors for recipient {recipient_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
