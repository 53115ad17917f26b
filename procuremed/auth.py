from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum

from procuremed.exceptions import AccessDeniedError, ValidationError


class Role(str, Enum):
    SUPPLIER = 'supplier'
    PROVIDER = 'provider'


ROLE_LABELS = {
    Role.SUPPLIER: 'Supplier',
    Role.PROVIDER: 'Healthcare Provider',
}


@dataclass(frozen=True)
class User:
    id: str
    name: str
    role: Role

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload['role'] = self.role.value
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> User:
        return cls(id=str(payload['id']), name=str(payload['name']), role=Role(payload['role']))


def parse_role(value: Role | str) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f'Unknown role: {value}', {'role': 'must be supplier or provider'}) from exc


def require_role(user: User | None, *allowed: Role) -> User:
    if user is None:
        raise AccessDeniedError('Sign in required.')
    if user.role not in allowed:
        labels = ' or '.join(ROLE_LABELS[role] for role in allowed)
        raise AccessDeniedError(f'Access denied. {labels} role required.')
    return user
