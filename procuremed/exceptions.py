"""
Typed exceptions raised by the ProcureMed services and state store.

Every class carries a machine-readable ``code`` so callers can branch on the
type instead of parsing messages:

    ProcureMedError
    +-- ValidationError            bad input, nothing was changed
    +-- ConflictError              current state forbids the operation
    |   +-- AlreadyAcceptedError
    |   +-- RecordNotFoundError
    |   +-- TransitionNotAllowedError
    +-- AccessDeniedError          role tag does not match

``ValidationError`` and ``ConflictError`` are also ``ValueError`` subclasses,
so callers that catch ``ValueError`` around service calls keep working.
"""

from __future__ import annotations


class ProcureMedError(Exception):
    code: str = 'PROCUREMED_ERROR'

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ProcureMedError, ValueError):
    """Input failed validation. ``fields`` maps each failing field to a reason."""

    code = 'VALIDATION_ERROR'

    def __init__(self, message: str, fields: dict[str, str] | None = None):
        self.fields = dict(fields or {})
        super().__init__(message)

    @classmethod
    def from_fields(cls, fields: dict[str, str], *, subject: str) -> ValidationError:
        names = ', '.join(fields)
        return cls(f'Invalid {subject}: {names}', fields)


class ConflictError(ProcureMedError, ValueError):
    code = 'CONFLICT'


class AlreadyAcceptedError(ConflictError):
    code = 'ALREADY_ACCEPTED'

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f'Requisition item {item_id} has already been accepted')


class RecordNotFoundError(ConflictError):
    code = 'NOT_FOUND'

    def __init__(self, record_type: str, record_id: int):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f'{record_type} {record_id} not found')


class TransitionNotAllowedError(ConflictError):
    code = 'TRANSITION_NOT_ALLOWED'

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f'Order status cannot move from {current} to {requested}')


class AccessDeniedError(ProcureMedError):
    code = 'ACCESS_DENIED'
