"""
Shared fixtures for all tests.

factory-boy factories build donor and recipient entities; the service
fixtures run on the in-memory repositories.
"""
import pytest
import factory
from fastapi.testclient import TestClient

from organ_match.core.config import ApplicationConfig, MatchingConfig
from organ_match.domains.registry.models.participants import Donor, Recipient
from organ_match.domains.registry.repositories.participant_repository import (
    InMemoryDonorRepository,
    InMemoryRecipientRepository,
)
from organ_match.domains.registry.services.registration_service import RegistrationService
from organ_match.domains.matching.repositories.match_repository import InMemoryMatchRepository
from organ_match.domains.matching.services.matching_service import MatchingService
from organ_match.domains.matching.services.query_service import QueryService
from organ_match.main import create_app


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class DonorFactory(factory.Factory):
    class Meta:
        model = Donor

    id = factory.Sequence(lambda n: f'donor_{n:04d}')
    name = factory.Sequence(lambda n: f'Donor {n}')
    blood_type = 'O+'
    organs = factory.LazyFunction(lambda: ['Kidney'])
    age = 35
    location = 'New York, NY'
    is_active = True
    is_verified = True
    priority = 100


class RecipientFactory(factory.Factory):
    class Meta:
        model = Recipient

    id = factory.Sequence(lambda n: f'recipient_{n:04d}')
    name = factory.Sequence(lambda n: f'Recipient {n}')
    blood_type = 'O+'
    organ = 'Kidney'
    urgency = 5
    age = 40
    location = 'New York, NY'
    is_active = True
    priority = 250


def donor_payload(**overrides):
    payload = {
        'name': 'Alice Donor',
        'bloodType': 'O+',
        'organs': ['Kidney'],
        'age': 35,
        'location': 'New York, NY',
        'isVerified': True,
    }
    payload.update(overrides)
    return payload


def recipient_payload(**overrides):
    payload = {
        'name': 'Bob Recipient',
        'bloodType': 'O+',
        'organ': 'Kidney',
        'urgency': 5,
        'age': 40,
        'location': 'New York, NY',
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def donor_repository():
    return InMemoryDonorRepository()


@pytest.fixture
def recipient_repository():
    return InMemoryRecipientRepository()


@pytest.fixture
def match_repository():
    return InMemoryMatchRepository()


@pytest.fixture
def matching_config():
    return MatchingConfig(
        default_page_limit=50,
        max_page_limit=500,
        display_scoring_mode='display',
        max_bulk_records=100,
    )


@pytest.fixture
def matching_service(match_repository, donor_repository, recipient_repository):
    return MatchingService(match_repository, donor_repository, recipient_repository)


@pytest.fixture
def query_service(match_repository, donor_repository, recipient_repository, matching_config):
    return QueryService(match_repository, donor_repository, recipient_repository, config=matching_config)


@pytest.fixture
def registration_service(donor_repository, recipient_repository, matching_service, matching_config):
    return RegistrationService(donor_repository, recipient_repository, matching_service, config=matching_config)


@pytest.fixture
def app_config(monkeypatch):
    monkeypatch.setenv('STORAGE_BACKEND', 'memory')
    monkeypatch.setenv('REDIS_LOCK_ENABLED', 'false')
    monkeypatch.setenv('WORKERS', '1')
    monkeypatch.delenv('ENVIRONMENT', raising=False)
    return ApplicationConfig()


@pytest.fixture
def client(app_config):
    with TestClient(create_app(app_config)) as test_client:
        yield test_client
