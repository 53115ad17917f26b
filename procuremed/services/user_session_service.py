from __future__ import annotations

import json
import secrets
from pathlib import Path
from typing import Protocol

from procuremed.auth import Role, User, parse_role
from procuremed.config import settings
from procuremed.exceptions import ValidationError
from procuremed.logging import get_logger
from procuremed.services.text_utils import clean_text

logger = get_logger(__name__)


class SessionSlot(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemorySessionSlot:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self.values.get(key)

    def write(self, key: str, value: str) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class FileSessionSlot:
    """Key-value slot stored as one JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning('Session file %s is unreadable; starting empty', self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, str]) -> None:
        if not data:
            self.path.unlink(missing_ok=True)
            return
        self.path.write_text(json.dumps(data), encoding='utf-8')

    def read(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def write(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            data.pop(key)
            self._save(data)


def get_session_slot() -> SessionSlot:
    backend = settings.session_backend.strip().lower()
    if backend == 'memory':
        return MemorySessionSlot()
    return FileSessionSlot(settings.session_file)


def login(slot: SessionSlot, *, name: str, role: Role | str, key: str | None = None) -> User:
    clean_name = clean_text(name)
    if not clean_name:
        raise ValidationError('Please enter your name.', {'name': 'Name is required'})
    user = User(id=secrets.token_hex(8), name=clean_name, role=parse_role(role))
    slot.write(key or settings.session_key, json.dumps(user.to_dict()))
    logger.info('Signed in %s as %s', user.name, user.role.value)
    return user


def logout(slot: SessionSlot, *, key: str | None = None) -> None:
    slot.remove(key or settings.session_key)


def load_session(slot: SessionSlot, *, key: str | None = None) -> User | None:
    raw = slot.read(key or settings.session_key)
    if not raw:
        return None
    try:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError('session payload is not an object')
        user = User.from_dict(payload)
    except (KeyError, TypeError, ValueError):
        # Malformed content means nobody is signed in.
        logger.warning('Ignoring malformed session in slot %s', key or settings.session_key)
        return None
    if not user.name.strip():
        return None
    return user
