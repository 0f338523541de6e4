"""
Unit tests for the in-memory match repository.

1. Insert-if-absent on the (donor, recipient) pair
2. Concurrent inserts of one pair store exactly one match
3. Status machine: allowed and rejected transitions
4. Successful transplant counter
5. Listing order and filters
"""
import asyncio

import pytest

from organ_match.core.exceptions import InvalidTransitionError, NotFoundError
from organ_match.domains.matching.models.matching import (
    Compatibility,
    Match,
    MatchFilter,
    MatchStatus,
)


def make_match(match_id='match_1', donor_id='donor_1', recipient_id='recipient_1', **overrides):
    values = dict(
        id=match_id,
        donor_id=donor_id,
        recipient_id=recipient_id,
        organ='Kidney',
        blood_type='O+',
        match_score=100,
        compatibility=Compatibility(blood_type=True, organ=True, location=True, age=True),
        priority=360,
    )
    values.update(overrides)
    return Match(**values)


class TestInsert:

    async def test_insert_and_lookup(self, match_repository):
        assert await match_repository.insert(make_match())

        assert (await match_repository.get('match_1')).donor_id == 'donor_1'
        assert (await match_repository.find_by_pair('donor_1', 'recipient_1')).id == 'match_1'

    async def test_second_match_for_pair_is_rejected(self, match_repository):
        await match_repository.insert(make_match('match_1'))

        assert not await match_repository.insert(make_match('match_2'))
        assert await match_repository.count() == 1

    async def test_concurrent_inserts_store_one(self, match_repository):
        results = await asyncio.gather(*[
            match_repository.insert(make_match(f'match_{n}'))
            for n in range(20)
        ])

        assert results.count(True) == 1
        assert await match_repository.count() == 1

    async def test_unknown_pair(self, match_repository):
        assert await match_repository.find_by_pair('donor_x', 'recipient_x') is None


class TestStatusTransitions:

    @pytest.mark.parametrize('target', [MatchStatus.APPROVED, MatchStatus.CANCELLED])
    async def test_from_pending(self, match_repository, target):
        match = make_match()
        await match_repository.insert(match)
        before = match.last_updated

        updated = await match_repository.update_status('match_1', target)

        assert updated.status == target
        assert updated.last_updated >= before

    async def test_approved_to_completed_counts_transplant(self, match_repository):
        await match_repository.insert(make_match())

        await match_repository.update_status('match_1', MatchStatus.APPROVED)
        await match_repository.update_status('match_1', MatchStatus.COMPLETED)

        assert await match_repository.successful_transplants() == 1

    async def test_completed_to_pending_is_rejected(self, match_repository):
        await match_repository.insert(make_match(status=MatchStatus.COMPLETED))

        with pytest.raises(InvalidTransitionError) as exc_info:
            await match_repository.update_status('match_1', MatchStatus.PENDING)

        assert exc_info.value.detail['current_status'] == 'completed'
        assert (await match_repository.get('match_1')).status == MatchStatus.COMPLETED

    @pytest.mark.parametrize('start,target', [
        (MatchStatus.PENDING, MatchStatus.COMPLETED),
        (MatchStatus.PENDING, MatchStatus.PENDING),
        (MatchStatus.APPROVED, MatchStatus.CANCELLED),
        (MatchStatus.CANCELLED, MatchStatus.APPROVED),
        (MatchStatus.COMPLETED, MatchStatus.CANCELLED),
    ])
    async def test_rejected_transitions(self, match_repository, start, target):
        await match_repository.insert(make_match(status=start))

        with pytest.raises(InvalidTransitionError):
            await match_repository.update_status('match_1', target)

    async def test_unknown_match(self, match_repository):
        with pytest.raises(NotFoundError):
            await match_repository.update_status('match_missing', MatchStatus.APPROVED)

    async def test_counter_survives_clear(self, match_repository):
        await match_repository.insert(make_match(status=MatchStatus.APPROVED))
        await match_repository.update_status('match_1', MatchStatus.COMPLETED)

        assert await match_repository.clear() == 1
        assert await match_repository.count() == 0
        assert await match_repository.successful_transplants() == 1


class TestListing:

    async def test_sorted_by_priority_then_score(self, match_repository):
        await match_repository.insert(make_match('m1', 'donor_1', 'recipient_1', priority=300, match_score=80))
        await match_repository.insert(make_match('m2', 'donor_2', 'recipient_1', priority=350, match_score=90))
        await match_repository.insert(make_match('m3', 'donor_3', 'recipient_1', priority=300, match_score=95))

        matches = await match_repository.list_all()

        assert [match.id for match in matches] == ['m2', 'm3', 'm1']

    async def test_participant_filter(self, match_repository):
        await match_repository.insert(make_match('m1', 'donor_1', 'recipient_1'))
        await match_repository.insert(make_match('m2', 'donor_2', 'recipient_2'))

        donor_matches = await match_repository.list_by_filter(MatchFilter(participant_id='donor_2'))
        recipient_matches = await match_repository.list_by_filter(MatchFilter(participant_id='recipient_1'))

        assert [match.id for match in donor_matches] == ['m2']
        assert [match.id for match in recipient_matches] == ['m1']

    async def test_status_filter(self, match_repository):
        await match_repository.insert(make_match('m1', 'donor_1', 'recipient_1'))
        await match_repository.insert(make_match('m2', 'donor_2', 'recipient_2', status=MatchStatus.APPROVED))

        approved = await match_repository.list_by_filter(MatchFilter(status=MatchStatus.APPROVED))

        assert [match.id for match in approved] == ['m2']
        assert await match_repository.count(MatchFilter(status=MatchStatus.PENDING)) == 1


class TestMatchDocument:

    def test_round_trip_through_dict(self):
        match = make_match(status=MatchStatus.APPROVED)

        restored = Match.from_dict({**match.to_dict(), '_id': 'ignored'})

        assert restored == match
        assert match.to_dict()['status'] == 'approved'

    def test_filter_query(self):
        query = MatchFilter(organ='Kidney', status=MatchStatus.PENDING, recipient_ids={'r2', 'r1'}).to_query()

        assert query == {'organ': 'Kidney', 'status': 'pending', 'recipient_id': {'$in': ['r1', 'r2']}}
