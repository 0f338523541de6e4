"""
Unit tests for domain exception classes.

1. Base class defaults
2. Default type / code / http_status of each subclass
3. Overriding code and http_status
4. to_dict() shape used by the API error handler
"""
import pytest

from organ_match.core.exceptions import (
    DuplicateRegistrationError,
    InvalidTransitionError,
    NotFoundError,
    OrganMatchError,
    StorageError,
    ValidationError,
)


class TestOrganMatchError:

    def test_defaults(self):
        exc = OrganMatchError('something broke')
        assert exc.message == 'something broke'
        assert exc.type == 'error'
        assert exc.code == 'UNKNOWN_ERROR'
        assert exc.http_status == 500
        assert exc.detail is None

    def test_override_code_and_status(self):
        exc = OrganMatchError('teapot', code='TEAPOT', http_status=418)
        assert exc.code == 'TEAPOT'
        assert exc.http_status == 418

    def test_override_does_not_leak_to_class(self):
        OrganMatchError('x', code='CHANGED')
        assert OrganMatchError.code == 'UNKNOWN_ERROR'

    def test_to_dict(self):
        exc = NotFoundError('Match m1 not found', code='MATCH_NOT_FOUND', detail={'match_id': 'm1'})
        assert exc.to_dict() == {
            'type': 'not_found',
            'code': 'MATCH_NOT_FOUND',
            'message': 'Match m1 not found',
            'detail': {'match_id': 'm1'},
        }


@pytest.mark.parametrize('cls,error_type,code,status', [
    (ValidationError, 'validation_error', 'VALIDATION_ERROR', 400),
    (DuplicateRegistrationError, 'duplicate', 'DUPLICATE_REGISTRATION', 409),
    (NotFoundError, 'not_found', 'NOT_FOUND', 404),
    (InvalidTransitionError, 'invalid_transition', 'INVALID_STATUS_TRANSITION', 409),
    (StorageError, 'storage_error', 'STORAGE_UNAVAILABLE', 503),
])
def test_subclass_defaults(cls, error_type, code, status):
    exc = cls('message')
    assert isinstance(exc, OrganMatchError)
    assert exc.type == error_type
    assert exc.code == code
    assert exc.http_status == status
