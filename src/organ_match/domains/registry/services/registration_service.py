"""
Registration service - records donors and recipients and triggers matching
"""

from typing import Any, Dict, List, Optional, Union
from uuid import uuid4
import asyncio
import logging
import time

from pydantic import ValidationError as PydanticValidationError

from ..models.participants import (
    Donor,
    Recipient,
    DonorInput,
    RecipientInput,
    DONOR_ID_PREFIX,
    RECIPIENT_ID_PREFIX,
)
from ..models.registration import (
    RegistrationResult,
    RecordWithCorrelationId,
    BulkRegistrationResult,
    BulkRegistrationResponse,
)
from ..repositories.participant_repository import DonorRepository, RecipientRepository
from ...matching.models.matching import Match, DonorRegistered, RecipientRegistered
from ...matching.services.matching_service import MatchingService, donor_can_match, recipient_can_match
from ...matching.services.priority import calculate_donor_priority, calculate_recipient_priority
from ....core.clock import utcnow
from ....core.config import MatchingConfig, get_matching_config
from ....core.exceptions import (
    OrganMatchError,
    ValidationError,
    DuplicateRegistrationError,
    NotFoundError,
    StorageError,
)
from ....core import metrics


logger = logging.getLogger(__name__)

BULK_BATCH_SIZE = 50


def _parse(model, data):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__} payload",
            detail=e.errors(include_url=False, include_context=False)
        ) from e


class RegistrationService:
    """Service layer for donor and recipient registration"""

    def __init__(
        self,
        donor_repository: DonorRepository,
        recipient_repository: RecipientRepository,
        matching_service: MatchingService,
        config: Optional[MatchingConfig] = None
    ):
        self.donor_repository = donor_repository
        self.recipient_repository = recipient_repository
        self.matching_service = matching_service
        self.config = config or get_matching_config()

    async def register_donor(self, data: Union[DonorInput, Dict[str, Any]]) -> RegistrationResult:
        """Validate and store a donor, then match it against the recipient pool"""
        donor_input = _parse(DonorInput, data)
        await self._check_duplicate(self.donor_repository, "Donor", donor_input.id, donor_input.wallet_address)

        now = utcnow()
        donor = Donor(
            id=donor_input.id or f"{DONOR_ID_PREFIX}{uuid4().hex[:16]}",
            name=donor_input.name,
            wallet_address=donor_input.wallet_address,
            blood_type=donor_input.blood_type,
            organs=list(donor_input.organs),
            age=donor_input.age,
            location=donor_input.location,
            medical_history=donor_input.medical_history,
            contact=donor_input.contact,
            is_active=donor_input.is_active,
            is_verified=donor_input.is_verified,
            registration_date=donor_input.registration_date or now,
            last_updated=now
        )
        donor.priority = calculate_donor_priority(donor)

        if not await self.donor_repository.insert(donor):
            raise DuplicateRegistrationError(
                "Donor already registered",
                detail={"id": donor.id, "wallet_address": donor.wallet_address}
            )

        metrics.registrations_total.labels(kind="donor").inc()
        logger.info(f"Donor registered: {donor.id} ({donor.blood_type}) priority {donor.priority}")

        new_matches = await self._run_matching(DonorRegistered(donor), "donor_id", donor.id)
        return RegistrationResult(participant=donor, new_matches=new_matches)

    async def register_recipient(self, data: Union[RecipientInput, Dict[str, Any]]) -> RegistrationResult:
        """Validate and store a recipient, then match it against the donor pool"""
        recipient_input = _parse(RecipientInput, data)
        await self._check_duplicate(
            self.recipient_repository, "Recipient", recipient_input.id, recipient_input.wallet_address
        )

        now = utcnow()
        recipient = Recipient(
            id=recipient_input.id or f"{RECIPIENT_ID_PREFIX}{uuid4().hex[:16]}",
            name=recipient_input.name,
            wallet_address=recipient_input.wallet_address,
            blood_type=recipient_input.blood_type,
            organ=recipient_input.organ,
            urgency=recipient_input.urgency,
            age=recipient_input.age,
            location=recipient_input.location,
            medical_history=recipient_input.medical_history,
            contact=recipient_input.contact,
            is_active=recipient_input.is_active,
            waiting_since=recipient_input.waiting_since or now,
            registration_date=recipient_input.registration_date or now,
            last_updated=now
        )
        recipient.priority = calculate_recipient_priority(recipient, now)

        if not await self.recipient_repository.insert(recipient):
            raise DuplicateRegistrationError(
                "Recipient already registered",
                detail={"id": recipient.id, "wallet_address": recipient.wallet_address}
            )

        metrics.registrations_total.labels(kind="recipient").inc()
        logger.info(
            f"Recipient registered: {recipient.id} ({recipient.blood_type}, {recipient.organ}) "
            f"priority {recipient.priority}"
        )

        new_matches = await self._run_matching(RecipientRegistered(recipient), "recipient_id", recipient.id)
        return RegistrationResult(participant=recipient, new_matches=new_matches)

    async def update_donor_status(
        self,
        donor_id: str,
        is_verified: Optional[bool] = None,
        is_active: Optional[bool] = None
    ) -> RegistrationResult:
        """
        Apply an external verification or withdrawal decision.

        A donor that becomes eligible is matched right away. Existing matches
        are kept when a donor is withdrawn.
        """
        changes = {
            name: value
            for name, value in (("is_verified", is_verified), ("is_active", is_active))
            if value is not None
        }
        if not changes:
            raise ValidationError("No status change requested", detail={"donor_id": donor_id})

        donor = await self.donor_repository.update_flags(donor_id, **changes)
        if donor is None:
            raise NotFoundError(f"Donor {donor_id} not found", code="DONOR_NOT_FOUND")

        logger.info(f"Donor {donor_id} status updated: {changes}")

        new_matches: List[Match] = []
        if donor_can_match(donor):
            new_matches = await self._run_matching(DonorRegistered(donor), "donor_id", donor.id)
        return RegistrationResult(participant=donor, new_matches=new_matches)

    async def update_recipient_status(self, recipient_id: str, is_active: bool) -> RegistrationResult:
        recipient = await self.recipient_repository.update_flags(recipient_id, is_active=is_active)
        if recipient is None:
            raise NotFoundError(f"Recipient {recipient_id} not found", code="RECIPIENT_NOT_FOUND")

        logger.info(f"Recipient {recipient_id} status updated: is_active={is_active}")

        new_matches: List[Match] = []
        if recipient_can_match(recipient):
            new_matches = await self._run_matching(
                RecipientRegistered(recipient), "recipient_id", recipient.id
            )
        return RegistrationResult(participant=recipient, new_matches=new_matches)

    async def bulk_register_donors(self, records: List[RecordWithCorrelationId]) -> BulkRegistrationResponse:
        return await self._bulk_register(records, self.register_donor, "donor")

    async def bulk_register_recipients(self, records: List[RecordWithCorrelationId]) -> BulkRegistrationResponse:
        return await self._bulk_register(records, self.register_recipient, "recipient")

    async def _bulk_register(self, records, register, kind: str) -> BulkRegistrationResponse:
        """Register records in batches, reporting per-record outcomes"""
        if len(records) > self.config.max_bulk_records:
            raise ValidationError(
                f"Bulk requests are limited to {self.config.max_bulk_records} records",
                detail={"records": len(records)}
            )

        start_time = time.perf_counter()
        request_id = str(uuid4())

        logger.info(f"Bulk {kind} registration {request_id} with {len(records)} records")

        results = []
        for i in range(0, len(records), BULK_BATCH_SIZE):
            batch = records[i:i + BULK_BATCH_SIZE]
            batch_results = await asyncio.gather(*[
                self._register_with_correlation(record, register)
                for record in batch
            ])
            results.extend(batch_results)

        successful = sum(1 for result in results if result.status == "success")

        return BulkRegistrationResponse(
            request_id=request_id,
            total_records=len(records),
            successful=successful,
            failed=len(results) - successful,
            results=results,
            total_processing_time_ms=(time.perf_counter() - start_time) * 1000
        )

    async def _register_with_correlation(self, record: RecordWithCorrelationId, register) -> BulkRegistrationResult:
        try:
            result = await register(record.data)
            return BulkRegistrationResult(
                correlation_id=record.correlation_id,
                participant_id=result.participant.id,
                status="success",
                new_matches=len(result.new_matches)
            )
        except OrganMatchError as e:
            logger.warning(f"Bulk record {record.correlation_id} failed: {e.message}")
            participant_id = e.detail.get("participant_id") if isinstance(e.detail, dict) else None
            return BulkRegistrationResult(
                correlation_id=record.correlation_id,
                participant_id=participant_id,
                status="error",
                error_code=e.code,
                error_message=e.message
            )

    async def _check_duplicate(self, repository, label: str, participant_id, wallet_address) -> None:
        if participant_id and await repository.get(participant_id):
            raise DuplicateRegistrationError(
                f"{label} {participant_id} already registered",
                detail={"id": participant_id}
            )
        if wallet_address and await repository.find_by_wallet(wallet_address):
            raise DuplicateRegistrationError(
                f"{label} already registered with this wallet address",
                detail={"wallet_address": wallet_address}
            )

    async def _run_matching(self, event, id_field: str, participant_id: str) -> List[Match]:
        """Run the orchestrator; a storage failure keeps the stored record"""
        try:
            return await self.matching_service.handle(event)
        except StorageError as e:
            logger.error(f"Matching failed for {id_field}={participant_id}, record kept: {e.message}")
            raise StorageError(
                f"Registered {participant_id} but matching failed; run a match refresh",
                code="MATCHING_DEFERRED",
                detail={id_field: participant_id, "participant_id": participant_id, "cause": e.detail}
            ) from e
