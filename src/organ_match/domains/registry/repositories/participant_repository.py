"""
Participant repositories - donor and recipient persistence
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Generic, TypeVar, Type, Union

from pymongo import ASCENDING, DESCENDING

from ..models.participants import Donor, Recipient, DonorFilter, RecipientFilter
from ....core.clock import utcnow
from ....core.database import BaseRepository, DatabaseManager


logger = logging.getLogger(__name__)

T = TypeVar("T", Donor, Recipient)
ParticipantFilter = Union[DonorFilter, RecipientFilter]

# Fields an external action may change after registration
MUTABLE_FLAGS = {
    Donor: frozenset({"is_active", "is_verified"}),
    Recipient: frozenset({"is_active"}),
}


class ParticipantRepository(ABC, Generic[T]):
    """Storage contract shared by donor and recipient repositories"""

    @abstractmethod
    async def insert(self, participant: T) -> bool:
        """Store a new record; False if its id or wallet address is taken"""

    @abstractmethod
    async def get(self, participant_id: str) -> Optional[T]:
        pass

    @abstractmethod
    async def find_by_wallet(self, wallet_address: str) -> Optional[T]:
        pass

    @abstractmethod
    async def list_by_filter(self, participant_filter: Optional[ParticipantFilter] = None) -> List[T]:
        """Matching records, priority descending, registration order on ties"""

    @abstractmethod
    async def update_flags(self, participant_id: str, **changes: bool) -> Optional[T]:
        """Set activity/verification flags; None if the record is unknown"""

    @abstractmethod
    async def count(self, participant_filter: Optional[ParticipantFilter] = None) -> int:
        pass

    def _check_flags(self, entity_type, changes: Dict[str, Any]) -> None:
        unknown = set(changes) - MUTABLE_FLAGS[entity_type]
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")


class InMemoryParticipantRepository(ParticipantRepository[T]):
    """Process-local participant store"""

    entity_type: Type = None

    def __init__(self):
        self._records: Dict[str, T] = {}
        self._lock = asyncio.Lock()

    async def insert(self, participant: T) -> bool:
        async with self._lock:
            if participant.id in self._records:
                return False
            if participant.wallet_address and self._wallet_taken(participant.wallet_address):
                return False
            self._records[participant.id] = participant
            return True

    def _wallet_taken(self, wallet_address: str) -> bool:
        return any(record.wallet_address == wallet_address for record in self._records.values())

    async def get(self, participant_id: str) -> Optional[T]:
        return self._records.get(participant_id)

    async def find_by_wallet(self, wallet_address: str) -> Optional[T]:
        for record in self._records.values():
            if record.wallet_address == wallet_address:
                return record
        return None

    async def list_by_filter(self, participant_filter: Optional[ParticipantFilter] = None) -> List[T]:
        records = [
            record for record in self._records.values()
            if participant_filter is None or participant_filter.matches(record)
        ]
        # sorted() is stable, so ties keep registration order
        return sorted(records, key=lambda record: -record.priority)

    async def update_flags(self, participant_id: str, **changes: bool) -> Optional[T]:
        self._check_flags(self.entity_type, changes)
        async with self._lock:
            record = self._records.get(participant_id)
            if record is None:
                return None
            for name, value in changes.items():
                setattr(record, name, value)
            record.last_updated = utcnow()
            return record

    async def count(self, participant_filter: Optional[ParticipantFilter] = None) -> int:
        if participant_filter is None:
            return len(self._records)
        return len(await self.list_by_filter(participant_filter))


class InMemoryDonorRepository(InMemoryParticipantRepository[Donor]):
    entity_type = Donor


class InMemoryRecipientRepository(InMemoryParticipantRepository[Recipient]):
    entity_type = Recipient


class MongoParticipantRepository(BaseRepository, ParticipantRepository[T]):
    """MongoDB participant store; uniqueness enforced by indexes"""

    entity_type: Type = None

    def __init__(self, db_manager: DatabaseManager, collection_name: str):
        super().__init__(db_manager, collection_name)

    async def insert(self, participant: T) -> bool:
        inserted = await self.insert_one(participant.to_dict())
        if not inserted:
            logger.info(f"Rejected duplicate {self.collection_name} record {participant.id}")
        return inserted

    async def get(self, participant_id: str) -> Optional[T]:
        doc = await self.find_one({"id": participant_id}, {"_id": 0})
        return self._doc_to_entity(doc) if doc else None

    async def find_by_wallet(self, wallet_address: str) -> Optional[T]:
        doc = await self.find_one({"wallet_address": wallet_address}, {"_id": 0})
        return self._doc_to_entity(doc) if doc else None

    async def list_by_filter(self, participant_filter: Optional[ParticipantFilter] = None) -> List[T]:
        query = participant_filter.to_query() if participant_filter else {}
        docs = await self.find_many(
            query,
            projection={"_id": 0},
            sort=[("priority", DESCENDING), ("registration_date", ASCENDING)]
        )
        return [self._doc_to_entity(doc) for doc in docs]

    async def update_flags(self, participant_id: str, **changes: bool) -> Optional[T]:
        self._check_flags(self.entity_type, changes)
        doc = await self.find_one_and_update(
            {"id": participant_id},
            {"$set": {**changes, "last_updated": utcnow()}}
        )
        return self._doc_to_entity(doc) if doc else None

    async def count(self, participant_filter: Optional[ParticipantFilter] = None) -> int:
        query = participant_filter.to_query() if participant_filter else {}
        return await self.count_documents(query)

    def _doc_to_entity(self, doc: Dict[str, Any]) -> T:
        """Convert MongoDB document to entity"""
        doc = {key: value for key, value in doc.items() if key != "_id"}
        return self.entity_type.from_dict(doc)


class MongoDonorRepository(MongoParticipantRepository[Donor]):
    entity_type = Donor

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(db_manager, "donors")


class MongoRecipientRepository(MongoParticipantRepository[Recipient]):
    entity_type = Recipient

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(db_manager, "recipients")


DonorRepository = ParticipantRepository[Donor]
RecipientRepository = ParticipantRepository[Recipient]
