"""
Matching controller - HTTP endpoint handlers for match records
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Query, Path, Depends
import logging
import time

from ..models.matching import (
    MatchFilter,
    MatchStatus,
    MatchResponse,
    MatchListResponse,
    MatchStatusUpdate,
    RefreshResponse,
    StatsResponse,
)
from ..services.matching_service import MatchingService
from ..services.query_service import QueryService
from ....core.dependencies import get_matching_service, get_query_service
from ....core.exceptions import OrganMatchError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["matching"])


@router.get("/matches", response_model=MatchListResponse)
async def list_matches(
    blood_type: Optional[str] = Query(None, description="Recipient blood type"),
    organ: Optional[str] = Query(None, description="Matched organ"),
    status: Optional[MatchStatus] = Query(None, description="Match status"),
    min_urgency: Optional[int] = Query(None, description="Minimum recipient urgency"),
    participant_id: Optional[str] = Query(None, description="Donor or recipient ID"),
    limit: Optional[int] = Query(None, description="Page size"),
    offset: int = Query(default=0, description="Skip records"),
    service: QueryService = Depends(get_query_service)
) -> MatchListResponse:
    """
    List matches

    Sorted by priority, then match score. Filters are AND-composed.
    """
    try:
        match_filter = MatchFilter(
            blood_type=blood_type,
            organ=organ,
            status=status,
            min_urgency=min_urgency,
            participant_id=participant_id
        )
        page = await service.list_matches(match_filter, limit=limit, offset=offset)

        return MatchListResponse(
            matches=[MatchResponse.model_validate(match) for match in page.items],
            total=page.total,
            pagination=page.pagination()
        )

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error listing matches: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/matches/refresh", response_model=RefreshResponse)
async def refresh_matches(
    service: MatchingService = Depends(get_matching_service)
) -> RefreshResponse:
    """
    Rebuild every match from the current pools

    Administrative reconciliation. Existing statuses are discarded and all
    matches start again as pending.
    """
    try:
        start_time = time.perf_counter()
        matches = await service.refresh_all()

        return RefreshResponse(
            total_matches=len(matches),
            processing_time_ms=(time.perf_counter() - start_time) * 1000
        )

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error refreshing matches: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/matches/{match_id}", response_model=MatchResponse)
async def get_match(
    match_id: str = Path(..., description="Match ID"),
    service: QueryService = Depends(get_query_service)
) -> MatchResponse:
    try:
        match = await service.get_match(match_id)
        return MatchResponse.model_validate(match)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error fetching match {match_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/matches/{match_id}/status", response_model=MatchResponse)
async def update_match_status(
    request: MatchStatusUpdate,
    match_id: str = Path(..., description="Match ID"),
    service: MatchingService = Depends(get_matching_service)
) -> MatchResponse:
    """
    Move a match through its status machine

    pending -> approved | cancelled, approved -> completed. Any other change
    is rejected with 409.
    """
    try:
        match = await service.update_match_status(match_id, request.status)
        return MatchResponse.model_validate(match)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error updating match {match_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    service: QueryService = Depends(get_query_service)
) -> StatsResponse:
    """Pool and match statistics"""
    try:
        stats = await service.get_stats()
        return StatsResponse.model_validate(stats)

    except OrganMatchError:
        raise
    except Exception as e:
        logger.error(f"Error computing stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))
