"""
Domain exceptions for the Organ Match Service

Every error carries:
- type:        error family identifier
- code:        machine readable error code
- message:     human readable description
- detail:      optional extra context (dict / list / None)
- http_status: status code used by the API exception handler

Services and repositories raise these; the API layer renders them.
"""


class OrganMatchError(Exception):
    """Base class for all domain errors"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)

    def to_dict(self):
        return {
            'type': self.type,
            'code': self.code,
            'message': self.message,
            'detail': self.detail,
        }


class ValidationError(OrganMatchError):
    """Missing or malformed registration field"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class DuplicateRegistrationError(OrganMatchError):
    """A donor or recipient is already registered under the same identity"""

    type = 'duplicate'
    code = 'DUPLICATE_REGISTRATION'
    http_status = 409


class NotFoundError(OrganMatchError):
    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404


class InvalidTransitionError(OrganMatchError):
    """Match status change not allowed by the status machine"""

    type = 'invalid_transition'
    code = 'INVALID_STATUS_TRANSITION'
    http_status = 409


class StorageError(OrganMatchError):
    """
    Transient persistence failure.

    Raised during match insertion it does not undo the donor or recipient
    record that was already stored; a later refresh reconciles the matches.
    """

    type = 'storage_error'
    code = 'STORAGE_UNAVAILABLE'
    http_status = 503
