"""
Unit tests for QueryService listings, search ranking and stats.
"""
import pytest

from organ_match.core.exceptions import NotFoundError, ValidationError
from organ_match.domains.matching.models.matching import MatchFilter, MatchStatus, ScoringMode
from organ_match.domains.registry.models.participants import DonorFilter, RecipientFilter
from tests.conftest import DonorFactory, RecipientFactory


@pytest.fixture
async def pools(donor_repository, recipient_repository, matching_service):
    donors = [
        DonorFactory(id='donor_ny', priority=150),
        DonorFactory(id='donor_albany', blood_type='O-', organs=['Kidney', 'Liver'], location='Albany, NY', priority=170),
        DonorFactory(id='donor_boston', blood_type='A+', location='Boston, MA', priority=120, is_verified=False),
        DonorFactory(id='donor_retired', blood_type='AB+', organs=['Heart'], is_active=False, priority=110),
    ]
    recipients = [
        RecipientFactory(id='recipient_urgent', urgency=5, priority=260),
        RecipientFactory(id='recipient_liver', blood_type='B+', organ='Liver', urgency=2, priority=170),
        RecipientFactory(id='recipient_calm', blood_type='A+', urgency=1, location='Boston, MA', priority=140),
    ]
    for donor in donors:
        await donor_repository.insert(donor)
    for recipient in recipients:
        await recipient_repository.insert(recipient)
    await matching_service.refresh_all()
    return donors, recipients


class TestListings:

    async def test_donors_sorted_by_priority(self, query_service, pools):
        page = await query_service.list_donors()

        assert [donor.id for donor in page.items] == ['donor_albany', 'donor_ny', 'donor_boston', 'donor_retired']
        assert page.total == 4
        assert not page.has_more

    async def test_donor_filters_compose(self, query_service, pools):
        page = await query_service.list_donors(DonorFilter(organ='Kidney', location='ny', is_verified=True))

        assert [donor.id for donor in page.items] == ['donor_albany', 'donor_ny']

    async def test_recipient_min_urgency(self, query_service, pools):
        page = await query_service.list_recipients(RecipientFilter(min_urgency=2))

        assert [recipient.id for recipient in page.items] == ['recipient_urgent', 'recipient_liver']

    async def test_pagination(self, query_service, pools):
        page = await query_service.list_donors(limit=2, offset=1)

        assert [donor.id for donor in page.items] == ['donor_ny', 'donor_boston']
        assert page.total == 4
        assert page.has_more
        assert page.pagination().has_more

    async def test_offset_past_end(self, query_service, pools):
        page = await query_service.list_donors(limit=10, offset=10)

        assert page.items == []
        assert page.total == 4
        assert not page.has_more

    @pytest.mark.parametrize('limit,offset', [(0, 0), (501, 0), (10, -1)])
    async def test_invalid_page_bounds(self, query_service, limit, offset):
        with pytest.raises(ValidationError):
            await query_service.list_donors(limit=limit, offset=offset)


class TestMatchListing:

    async def test_all_matches(self, query_service, pools):
        page = await query_service.list_matches()

        assert {(match.donor_id, match.recipient_id) for match in page.items} == {
            ('donor_ny', 'recipient_urgent'),
            ('donor_ny', 'recipient_calm'),
            ('donor_albany', 'recipient_urgent'),
            ('donor_albany', 'recipient_liver'),
            ('donor_albany', 'recipient_calm'),
        }
        priorities = [match.priority for match in page.items]
        assert priorities == sorted(priorities, reverse=True)

    async def test_min_urgency_resolves_through_recipients(self, query_service, pools):
        match_filter = MatchFilter(min_urgency=2)

        page = await query_service.list_matches(match_filter)

        assert {match.recipient_id for match in page.items} == {'recipient_urgent', 'recipient_liver'}
        assert match_filter.recipient_ids is None

    async def test_participant_and_organ_filters(self, query_service, pools):
        page = await query_service.list_matches(MatchFilter(participant_id='donor_albany', organ='Liver'))

        assert [match.recipient_id for match in page.items] == ['recipient_liver']

    async def test_get_match(self, query_service, pools):
        page = await query_service.list_matches()

        match = await query_service.get_match(page.items[0].id)

        assert match is page.items[0]

    async def test_unknown_ids(self, query_service):
        with pytest.raises(NotFoundError):
            await query_service.get_match('match_missing')
        with pytest.raises(NotFoundError):
            await query_service.get_donor('donor_missing')
        with pytest.raises(NotFoundError):
            await query_service.get_recipient('recipient_missing')


class TestSearch:

    async def test_find_compatible_donors(self, query_service, pools):
        donors = await query_service.find_compatible_donors('A+', 'Kidney')

        # donor_boston is A+ but unverified
        assert [donor.id for donor in donors] == ['donor_albany', 'donor_ny']

    async def test_find_compatible_donors_for_o_negative(self, query_service, pools):
        donors = await query_service.find_compatible_donors('O-', 'Kidney')

        assert [donor.id for donor in donors] == ['donor_albany']

    async def test_rank_donors_for_recipient(self, query_service, pools):
        ranked = await query_service.rank_donors_for_recipient('recipient_calm', mode=ScoringMode.MATCHING)

        # donor_boston: 40 + 30 + 15 + 10 + 1; donor_ny and donor_albany: 30 + 30 + 10 + 1
        assert [(candidate.participant.id, candidate.score) for candidate in ranked] == [
            ('donor_boston', 96),
            ('donor_albany', 71),
            ('donor_ny', 71),
        ]

    async def test_display_mode_is_default(self, query_service, pools):
        ranked = await query_service.rank_donors_for_recipient('recipient_calm')

        assert all(candidate.score == 100 for candidate in ranked)
        assert [candidate.participant.id for candidate in ranked][0] == 'donor_albany'

    async def test_rank_recipients_for_donor(self, query_service, pools):
        ranked = await query_service.rank_recipients_for_donor('donor_ny', mode=ScoringMode.MATCHING, limit=1)

        assert [(candidate.participant.id, candidate.score) for candidate in ranked] == [('recipient_urgent', 100)]

    async def test_display_ranking_ignores_organ_case(self, query_service, donor_repository, recipient_repository):
        await donor_repository.insert(DonorFactory(id='donor_lower', organs=['kidney']))
        await recipient_repository.insert(RecipientFactory(id='recipient_kidney', organ='Kidney'))

        display = await query_service.rank_donors_for_recipient('recipient_kidney', mode=ScoringMode.DISPLAY)
        matching = await query_service.rank_donors_for_recipient('recipient_kidney', mode=ScoringMode.MATCHING)

        assert [(candidate.participant.id, candidate.score) for candidate in display] == [('donor_lower', 100)]
        assert matching == []

    async def test_rank_unknown_recipient(self, query_service):
        with pytest.raises(NotFoundError):
            await query_service.rank_donors_for_recipient('recipient_missing')


class TestStats:

    async def test_stats(self, query_service, matching_service, pools):
        page = await query_service.list_matches()
        match_id = page.items[0].id
        await matching_service.update_match_status(match_id, MatchStatus.APPROVED)
        await matching_service.update_match_status(match_id, MatchStatus.COMPLETED)

        stats = await query_service.get_stats()

        assert stats.total_donors == 4
        assert stats.active_donors == 3
        assert stats.verified_donors == 3
        assert stats.total_recipients == 3
        assert stats.active_recipients == 3
        assert stats.total_matches == 5
        assert stats.pending_matches == 4
        assert stats.completed_matches == 1
        assert stats.successful_transplants == 1
        assert 0 < stats.average_match_score <= 100

    async def test_empty_stats(self, query_service):
        stats = await query_service.get_stats()

        assert stats.total_matches == 0
        assert stats.average_match_score == 0.0
