"""
Match repository - persistence for match records

At most one match exists per (donor_id, recipient_id). Donor and recipient
ids come from separate namespaces, so keying on the ordered pair also keeps
the unordered pair unique.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Tuple

from pymongo import DESCENDING

from ..models.matching import (
    Match,
    MatchFilter,
    MatchStatus,
    allowed_sources,
    can_transition,
    match_sort_key,
)
from ....core.clock import utcnow
from ....core.database import BaseRepository, DatabaseManager
from ....core.exceptions import NotFoundError, InvalidTransitionError


logger = logging.getLogger(__name__)

STATS_DOCUMENT_ID = "match_stats"


def _not_found(match_id: str) -> NotFoundError:
    return NotFoundError(
        f"Match {match_id} not found",
        code="MATCH_NOT_FOUND",
        detail={"match_id": match_id}
    )


def _invalid_transition(match: Match, new_status: MatchStatus) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"Cannot move match {match.id} from {match.status.value} to {new_status.value}",
        detail={
            "match_id": match.id,
            "current_status": match.status.value,
            "requested_status": new_status.value
        }
    )


class MatchRepository(ABC):
    """Storage contract for match records"""

    @abstractmethod
    async def insert(self, match: Match) -> bool:
        """
        Atomically insert the match unless its pair already has one.

        Returns True if stored, False if the pair was already matched.
        """

    @abstractmethod
    async def find_by_pair(self, donor_id: str, recipient_id: str) -> Optional[Match]:
        pass

    @abstractmethod
    async def get(self, match_id: str) -> Optional[Match]:
        pass

    @abstractmethod
    async def list_by_filter(self, match_filter: Optional[MatchFilter] = None) -> List[Match]:
        """Matches sorted by priority, then match score, both descending"""

    async def list_all(self) -> List[Match]:
        return await self.list_by_filter(None)

    @abstractmethod
    async def update_status(self, match_id: str, new_status: MatchStatus) -> Match:
        """
        Apply a status transition and bump last_updated.

        Raises NotFoundError for unknown ids and InvalidTransitionError for
        transitions the status machine does not allow. Completing a match
        increments the successful transplant counter.
        """

    @abstractmethod
    async def clear(self) -> int:
        """Remove every match; returns how many were removed"""

    @abstractmethod
    async def count(self, match_filter: Optional[MatchFilter] = None) -> int:
        pass

    @abstractmethod
    async def successful_transplants(self) -> int:
        """Process-wide count of matches moved to completed"""


class InMemoryMatchRepository(MatchRepository):
    """Process-local match store"""

    def __init__(self):
        self._matches: Dict[str, Match] = {}
        self._by_pair: Dict[Tuple[str, str], str] = {}
        self._successful_transplants = 0
        self._lock = asyncio.Lock()

    async def insert(self, match: Match) -> bool:
        async with self._lock:
            if match.pair in self._by_pair or match.id in self._matches:
                return False
            self._matches[match.id] = match
            self._by_pair[match.pair] = match.id
            return True

    async def find_by_pair(self, donor_id: str, recipient_id: str) -> Optional[Match]:
        match_id = self._by_pair.get((donor_id, recipient_id))
        return self._matches.get(match_id) if match_id else None

    async def get(self, match_id: str) -> Optional[Match]:
        return self._matches.get(match_id)

    async def list_by_filter(self, match_filter: Optional[MatchFilter] = None) -> List[Match]:
        matches = [
            match for match in self._matches.values()
            if match_filter is None or match_filter.matches(match)
        ]
        return sorted(matches, key=match_sort_key)

    async def update_status(self, match_id: str, new_status: MatchStatus) -> Match:
        new_status = MatchStatus(new_status)
        async with self._lock:
            match = self._matches.get(match_id)
            if match is None:
                raise _not_found(match_id)
            if not can_transition(match.status, new_status):
                raise _invalid_transition(match, new_status)

            match.status = new_status
            match.last_updated = utcnow()
            if new_status == MatchStatus.COMPLETED:
                self._successful_transplants += 1
            return match

    async def clear(self) -> int:
        async with self._lock:
            removed = len(self._matches)
            self._matches.clear()
            self._by_pair.clear()
            return removed

    async def count(self, match_filter: Optional[MatchFilter] = None) -> int:
        if match_filter is None:
            return len(self._matches)
        return len(await self.list_by_filter(match_filter))

    async def successful_transplants(self) -> int:
        return self._successful_transplants


class MongoMatchRepository(BaseRepository, MatchRepository):
    """MongoDB match store; the unique pair index provides insert-if-absent"""

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(db_manager, "matches")
        self.metadata_collection_name = "metadata"

    async def insert(self, match: Match) -> bool:
        return await self.insert_one(match.to_dict())

    async def find_by_pair(self, donor_id: str, recipient_id: str) -> Optional[Match]:
        doc = await self.find_one({"donor_id": donor_id, "recipient_id": recipient_id}, {"_id": 0})
        return self._doc_to_entity(doc) if doc else None

    async def get(self, match_id: str) -> Optional[Match]:
        doc = await self.find_one({"id": match_id}, {"_id": 0})
        return self._doc_to_entity(doc) if doc else None

    async def list_by_filter(self, match_filter: Optional[MatchFilter] = None) -> List[Match]:
        query = match_filter.to_query() if match_filter else {}
        docs = await self.find_many(
            query,
            projection={"_id": 0},
            sort=[("priority", DESCENDING), ("match_score", DESCENDING)]
        )
        return [self._doc_to_entity(doc) for doc in docs]

    async def update_status(self, match_id: str, new_status: MatchStatus) -> Match:
        new_status = MatchStatus(new_status)
        sources = [status.value for status in allowed_sources(new_status)]

        # Conditional update keeps check-and-set atomic across workers
        doc = await self.find_one_and_update(
            {"id": match_id, "status": {"$in": sources}},
            {"$set": {"status": new_status.value, "last_updated": utcnow()}}
        )

        if doc is None:
            current = await self.get(match_id)
            if current is None:
                raise _not_found(match_id)
            raise _invalid_transition(current, new_status)

        if new_status == MatchStatus.COMPLETED:
            await self._increment_transplants()

        return self._doc_to_entity(doc)

    async def _increment_transplants(self) -> None:
        metadata = BaseRepository(self.db_manager, self.metadata_collection_name)
        await metadata.update_one(
            {"_id": STATS_DOCUMENT_ID},
            {"$inc": {"successful_transplants": 1}},
            upsert=True
        )

    async def clear(self) -> int:
        return await self.delete_many({})

    async def count(self, match_filter: Optional[MatchFilter] = None) -> int:
        query = match_filter.to_query() if match_filter else {}
        return await self.count_documents(query)

    async def successful_transplants(self) -> int:
        metadata = BaseRepository(self.db_manager, self.metadata_collection_name)
        doc = await metadata.find_one({"_id": STATS_DOCUMENT_ID})
        return doc.get("successful_transplants", 0) if doc else 0

    def _doc_to_entity(self, doc: Dict[str, Any]) -> Match:
        """Convert MongoDB document to entity"""
        doc = {key: value for key, value in doc.items() if key != "_id"}
        return Match.from_dict(doc)
