"""
Matching service - discovers, scores and records donor/recipient matches
"""

from typing import List, Optional
from uuid import uuid4
import hashlib
import logging
import time

import orjson

from ..models.matching import (
    Match,
    MatchStatus,
    DonorRegistered,
    RecipientRegistered,
    RegistrationEvent,
)
from ..repositories.match_repository import MatchRepository
from .compatibility import is_blood_compatible, has_organ
from .scoring import score, evaluate_compatibility
from ...registry.models.participants import Donor, Recipient, DonorFilter, RecipientFilter
from ...registry.repositories.participant_repository import DonorRepository, RecipientRepository
from ....core.clock import utcnow
from ....core.locking import MatchingLock, LocalMatchingLock
from ....core import metrics


logger = logging.getLogger(__name__)


def donor_can_match(donor: Donor) -> bool:
    return donor.is_active and donor.is_verified


def recipient_can_match(recipient: Recipient) -> bool:
    return recipient.is_active


class MatchingService:
    """
    Matching orchestrator.

    Registration hands a DonorRegistered or RecipientRegistered command to
    handle() (or calls the on_*_registered entry points directly); the
    service scans the opposite pool and stores new matches. Every pass runs
    under the global matching lock so a full refresh never interleaves with
    per-registration inserts.
    """

    def __init__(
        self,
        match_repository: MatchRepository,
        donor_repository: DonorRepository,
        recipient_repository: RecipientRepository,
        lock: Optional[MatchingLock] = None
    ):
        self.match_repository = match_repository
        self.donor_repository = donor_repository
        self.recipient_repository = recipient_repository
        self.lock = lock or LocalMatchingLock()

    @staticmethod
    def generate_match_id(donor_id: str, recipient_id: str) -> str:
        """Match id from the pair plus a creation nonce"""
        key_string = orjson.dumps(
            {"donor_id": donor_id, "recipient_id": recipient_id, "nonce": uuid4().hex},
            option=orjson.OPT_SORT_KEYS
        )
        return f"match_{hashlib.blake2b(key_string, digest_size=12).hexdigest()}"

    def build_match(self, donor: Donor, recipient: Recipient) -> Optional[Match]:
        """Pending match for a compatible pair, None if the rules reject it"""
        if not is_blood_compatible(donor.blood_type, recipient.blood_type):
            return None
        if not has_organ(donor, recipient.organ):
            return None

        match_score = score(donor, recipient)
        now = utcnow()

        return Match(
            id=self.generate_match_id(donor.id, recipient.id),
            donor_id=donor.id,
            recipient_id=recipient.id,
            donor_name=donor.name,
            recipient_name=recipient.name,
            organ=recipient.organ,
            blood_type=recipient.blood_type,
            match_score=match_score,
            compatibility=evaluate_compatibility(donor, recipient),
            priority=recipient.priority + match_score,
            status=MatchStatus.PENDING,
            created_at=now,
            last_updated=now
        )

    async def handle(self, event: RegistrationEvent) -> List[Match]:
        """Dispatch a registration command to the matching entry point"""
        if isinstance(event, DonorRegistered):
            return await self.on_donor_registered(event.donor)
        if isinstance(event, RecipientRegistered):
            return await self.on_recipient_registered(event.recipient)
        raise TypeError(f"Unsupported registration event: {type(event).__name__}")

    async def on_donor_registered(self, donor: Donor) -> List[Match]:
        """Match a donor against every active recipient"""
        async with self.lock.hold():
            new_matches = await self._match_donor(donor)

        metrics.matches_created_total.labels(trigger="donor").inc(len(new_matches))
        logger.info(f"Donor {donor.id} ({donor.blood_type}) - {len(new_matches)} new matches found")
        return new_matches

    async def on_recipient_registered(self, recipient: Recipient) -> List[Match]:
        """Match a recipient against every active, verified donor"""
        async with self.lock.hold():
            new_matches = await self._match_recipient(recipient)

        metrics.matches_created_total.labels(trigger="recipient").inc(len(new_matches))
        logger.info(
            f"Recipient {recipient.id} ({recipient.blood_type}, {recipient.organ}) - "
            f"{len(new_matches)} new matches found"
        )
        return new_matches

    async def refresh_all(self) -> List[Match]:
        """
        Clear all matches and rebuild them from the full pools.

        Intended for administrative reconciliation, e.g. after a registration
        whose matching step failed. Holds the matching lock throughout.
        """
        start_time = time.perf_counter()

        async with self.lock.hold():
            removed = await self.match_repository.clear()
            logger.info(f"Match refresh started, cleared {removed} matches")

            donors = await self.donor_repository.list_by_filter(
                DonorFilter(is_active=True, is_verified=True)
            )
            matches = []
            for donor in donors:
                matches.extend(await self._match_donor(donor))

        elapsed = time.perf_counter() - start_time
        metrics.refresh_duration.observe(elapsed)
        metrics.matches_created_total.labels(trigger="refresh").inc(len(matches))
        logger.info(f"Matches refreshed: {len(matches)} total matches in {elapsed * 1000:.1f}ms")
        return matches

    async def update_match_status(self, match_id: str, new_status: MatchStatus) -> Match:
        """Apply an operator decision to a match"""
        new_status = MatchStatus(new_status)
        match = await self.match_repository.update_status(match_id, new_status)

        metrics.status_transitions_total.labels(status=new_status.value).inc()
        if new_status == MatchStatus.COMPLETED:
            metrics.successful_transplants_total.inc()

        logger.info(f"Match {match_id} moved to {new_status.value}")
        return match

    async def _match_donor(self, donor: Donor) -> List[Match]:
        if not donor_can_match(donor):
            return []

        recipients = await self.recipient_repository.list_by_filter(RecipientFilter(is_active=True))
        return await self._store_new_matches(
            self.build_match(donor, recipient) for recipient in recipients
        )

    async def _match_recipient(self, recipient: Recipient) -> List[Match]:
        if not recipient_can_match(recipient):
            return []

        donors = await self.donor_repository.list_by_filter(
            DonorFilter(is_active=True, is_verified=True)
        )
        return await self._store_new_matches(
            self.build_match(donor, recipient) for donor in donors
        )

    async def _store_new_matches(self, candidates) -> List[Match]:
        new_matches = []
        for match in candidates:
            if match is None:
                continue
            if await self.match_repository.find_by_pair(match.donor_id, match.recipient_id):
                continue
            if await self.match_repository.insert(match):
                new_matches.append(match)
        return new_matches
