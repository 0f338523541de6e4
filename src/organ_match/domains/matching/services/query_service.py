"""
Query service - ranked, filtered, paginated views of the pools and matches
"""

from dataclasses import replace
from typing import List, Optional
import logging

from ..models.matching import (
    Match,
    MatchFilter,
    MatchStats,
    MatchStatus,
    RankedCandidate,
    ScoringMode,
)
from ..repositories.match_repository import MatchRepository
from .compatibility import compatible_donor_types
from .scoring import score
from ...registry.models.participants import (
    Donor,
    Recipient,
    DonorFilter,
    RecipientFilter,
)
from ...registry.repositories.participant_repository import DonorRepository, RecipientRepository
from ....core.config import MatchingConfig, get_matching_config
from ....core.exceptions import NotFoundError, ValidationError
from ....core.pagination import Page, paginate


logger = logging.getLogger(__name__)


class QueryService:
    """Read-side service for listings, search ranking and statistics"""

    def __init__(
        self,
        match_repository: MatchRepository,
        donor_repository: DonorRepository,
        recipient_repository: RecipientRepository,
        config: Optional[MatchingConfig] = None
    ):
        self.match_repository = match_repository
        self.donor_repository = donor_repository
        self.recipient_repository = recipient_repository
        self.config = config or get_matching_config()

    def _page_bounds(self, limit: Optional[int], offset: int):
        limit = self.config.default_page_limit if limit is None else limit
        if limit <= 0 or limit > self.config.max_page_limit:
            raise ValidationError(
                f"limit must be between 1 and {self.config.max_page_limit}",
                detail={"limit": limit}
            )
        if offset < 0:
            raise ValidationError("offset must not be negative", detail={"offset": offset})
        return limit, offset

    async def list_donors(
        self,
        donor_filter: Optional[DonorFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Page[Donor]:
        limit, offset = self._page_bounds(limit, offset)
        donors = await self.donor_repository.list_by_filter(donor_filter)
        return paginate(donors, limit, offset)

    async def list_recipients(
        self,
        recipient_filter: Optional[RecipientFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Page[Recipient]:
        limit, offset = self._page_bounds(limit, offset)
        recipients = await self.recipient_repository.list_by_filter(recipient_filter)
        return paginate(recipients, limit, offset)

    async def list_matches(
        self,
        match_filter: Optional[MatchFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Page[Match]:
        """
        Matches by priority then score. Urgency lives on the recipient record,
        so a minimum urgency is resolved to the qualifying recipient ids.
        """
        limit, offset = self._page_bounds(limit, offset)
        match_filter = match_filter or MatchFilter()

        if match_filter.min_urgency is not None:
            recipients = await self.recipient_repository.list_by_filter(
                RecipientFilter(min_urgency=match_filter.min_urgency)
            )
            urgent_ids = {recipient.id for recipient in recipients}
            if match_filter.recipient_ids is not None:
                urgent_ids &= set(match_filter.recipient_ids)
            match_filter = replace(match_filter, recipient_ids=urgent_ids)

        matches = await self.match_repository.list_by_filter(match_filter)
        return paginate(matches, limit, offset)

    async def get_donor(self, donor_id: str) -> Donor:
        donor = await self.donor_repository.get(donor_id)
        if donor is None:
            raise NotFoundError(f"Donor {donor_id} not found", code="DONOR_NOT_FOUND")
        return donor

    async def get_recipient(self, recipient_id: str) -> Recipient:
        recipient = await self.recipient_repository.get(recipient_id)
        if recipient is None:
            raise NotFoundError(f"Recipient {recipient_id} not found", code="RECIPIENT_NOT_FOUND")
        return recipient

    async def get_match(self, match_id: str) -> Match:
        match = await self.match_repository.get(match_id)
        if match is None:
            raise NotFoundError(f"Match {match_id} not found", code="MATCH_NOT_FOUND")
        return match

    async def find_compatible_donors(self, blood_type: str, organ: str) -> List[Donor]:
        """Active, verified donors able to give organ to a blood_type recipient"""
        donor_types = set(compatible_donor_types(blood_type))
        donors = await self.donor_repository.list_by_filter(
            DonorFilter(organ=organ, is_active=True, is_verified=True)
        )
        return [donor for donor in donors if donor.blood_type in donor_types]

    async def rank_donors_for_recipient(
        self,
        recipient_id: str,
        mode: Optional[ScoringMode] = None,
        limit: Optional[int] = None
    ) -> List[RankedCandidate]:
        """Search view: active donors scored against one recipient"""
        mode = ScoringMode(mode or self.config.display_scoring_mode)
        recipient = await self.get_recipient(recipient_id)
        donors = await self.donor_repository.list_by_filter(DonorFilter(is_active=True))

        ranked = [
            RankedCandidate(participant=donor, score=score(donor, recipient, mode))
            for donor in donors
        ]
        return self._rank(ranked, limit)

    async def rank_recipients_for_donor(
        self,
        donor_id: str,
        mode: Optional[ScoringMode] = None,
        limit: Optional[int] = None
    ) -> List[RankedCandidate]:
        """Search view: active recipients scored against one donor"""
        mode = ScoringMode(mode or self.config.display_scoring_mode)
        donor = await self.get_donor(donor_id)
        recipients = await self.recipient_repository.list_by_filter(RecipientFilter(is_active=True))

        ranked = [
            RankedCandidate(participant=recipient, score=score(donor, recipient, mode))
            for recipient in recipients
        ]
        return self._rank(ranked, limit)

    def _rank(self, ranked: List[RankedCandidate], limit: Optional[int]) -> List[RankedCandidate]:
        # Incompatible candidates score 0 and drop out of the view
        ranked = [candidate for candidate in ranked if candidate.score > 0]
        ranked.sort(key=lambda candidate: (-candidate.score, -candidate.participant.priority))
        limit, _ = self._page_bounds(limit, 0)
        return ranked[:limit]

    async def get_stats(self) -> MatchStats:
        donors = await self.donor_repository.list_by_filter(None)
        recipients = await self.recipient_repository.list_by_filter(None)
        matches = await self.match_repository.list_all()

        return MatchStats(
            total_donors=len(donors),
            active_donors=sum(1 for donor in donors if donor.is_active),
            verified_donors=sum(1 for donor in donors if donor.is_verified),
            total_recipients=len(recipients),
            active_recipients=sum(1 for recipient in recipients if recipient.is_active),
            total_matches=len(matches),
            pending_matches=sum(1 for match in matches if match.status == MatchStatus.PENDING),
            completed_matches=sum(1 for match in matches if match.status == MatchStatus.COMPLETED),
            successful_transplants=await self.match_repository.successful_transplants(),
            average_match_score=(
                sum(match.match_score for match in matches) / len(matches) if matches else 0.0
            )
        )
