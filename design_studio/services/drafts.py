from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Protocol

from design_studio.core.clock import as_utc, utcnow
from design_studio.core.config import DRAFT_TTL_DAYS

logger = logging.getLogger(__name__)

KEY_PREFIX = "job-intake-draft"
KEY_VERSION = "v1"


class DraftBackend(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryDraftBackend:
    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


def draft_key(user_id: int | str, form_id: str = "job-intake") -> str:
    return f"{KEY_PREFIX}-{KEY_VERSION}-{user_id}-{form_id}"


class DraftStore:
    """Autosaved form state, keyed by user and form, expired on read."""

    def __init__(self, backend: DraftBackend, *, ttl: timedelta = timedelta(days=DRAFT_TTL_DAYS)) -> None:
        self._backend = backend
        self._ttl = ttl

    def save(self, user_id: int | str, form_id: str, data: dict[str, Any], *, now: datetime | None = None) -> dict[str, Any]:
        payload = dict(data)
        payload["last_saved"] = (now or utcnow()).isoformat()
        self._backend.set(draft_key(user_id, form_id), json.dumps(payload, ensure_ascii=False, default=str))
        return payload

    def load(self, user_id: int | str, form_id: str, *, now: datetime | None = None) -> dict[str, Any] | None:
        key = draft_key(user_id, form_id)
        raw = self._backend.get(key)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            last_saved = as_utc(datetime.fromisoformat(payload["last_saved"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("[DRAFTS] unreadable draft discarded key=%s", key)
            self._backend.delete(key)
            return None

        if (as_utc(now) or utcnow()) - last_saved > self._ttl:
            logger.info("[DRAFTS] expired draft removed key=%s last_saved=%s", key, payload["last_saved"])
            self._backend.delete(key)
            return None
        return payload

    def clear(self, user_id: int | str, form_id: str) -> None:
        self._backend.delete(draft_key(user_id, form_id))

    def has_draft(self, user_id: int | str, form_id: str, *, now: datetime | None = None) -> bool:
        return self.load(user_id, form_id, now=now) is not None

    def last_saved(self, user_id: int | str, form_id: str, *, now: datetime | None = None) -> datetime | None:
        payload = self.load(user_id, form_id, now=now)
        if payload is None:
            return None
        return as_utc(datetime.fromisoformat(payload["last_saved"]))


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_last_saved(timestamp: datetime, *, now: datetime | None = None) -> str:
    minutes = int(((as_utc(now) or utcnow()) - as_utc(timestamp)).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if minutes < 1440:
        return _plural(minutes // 60, "hour")
    return _plural(minutes // 1440, "day")
