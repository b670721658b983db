"""Bounded run history and the last model selection, persisted as JSON."""

import json
import logging
from collections import deque
from dataclasses import asdict
from pathlib import Path

from llm_council.models import RunSummary

logger = logging.getLogger(__name__)


class HistoryRing:
    """Newest-first collection that drops the oldest entry past ``capacity``."""

    def __init__(self, capacity: int, entries: list[RunSummary] | None = None) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[RunSummary] = deque(maxlen=capacity)
        # entries are newest-first; appendleft oldest first to keep that order
        for entry in reversed((entries or [])[:capacity]):
            self._entries.appendleft(entry)

    def append(self, entry: RunSummary) -> None:
        self._entries.appendleft(entry)

    def all(self) -> list[RunSummary]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class HistoryStore:
    """Owns a HistoryRing plus the sticky model selection and its chair, backed by one JSON file."""

    def __init__(self, path: Path, capacity: int) -> None:
        self.path = path
        self._last_selection: list[str] = []
        self._last_chair: str | None = None
        self._ring = HistoryRing(capacity, self._load())

    def _load(self) -> list[RunSummary]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise TypeError(f"expected an object, got {type(raw).__name__}")
            entries = [RunSummary(**item) for item in raw.get("history", [])]
            selection = [str(m) for m in raw.get("last_selection", [])]
        except (OSError, json.JSONDecodeError, TypeError, KeyError) as exc:
            logger.warning("Ignoring unreadable history file %s: %s", self.path, exc)
            return []
        self._last_selection = selection
        chair = raw.get("last_chair")
        self._last_chair = str(chair) if chair and chair in selection else None
        return entries

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "last_selection": self._last_selection,
            "last_chair": self._last_chair,
            "history": [asdict(entry) for entry in self._ring.all()],
        }
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def append(self, entry: RunSummary) -> None:
        self._ring.append(entry)
        self._save()

    def all(self) -> list[RunSummary]:
        return self._ring.all()

    @property
    def last_selection(self) -> list[str]:
        return list(self._last_selection)

    @property
    def last_chair(self) -> str | None:
        return self._last_chair

    def remember_selection(self, models: list[str], chair: str | None = None) -> None:
        self._last_selection = list(models)
        self._last_chair = chair if chair in models else None
        self._save()
