"""Process-wide playbook registry with wholesale reload."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from helpdesk_ai.playbooks.engine import load_playbook
from helpdesk_ai.playbooks.models import Playbook

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class PlaybookMatch:
    """A playbook that satisfied the search criteria, with its match strength."""

    playbook: Playbook
    dimensions_matched: int
    keyword_hits: int


class PlaybookRegistry:
    """Holds loaded playbook definitions keyed by id.

    Lifecycle: `load_all` (or `load_directory`) at startup, concurrent reads
    while serving, `reload` to replace the whole mapping. The mapping itself is
    never mutated after publication; readers grab the current reference and
    work on that snapshot, so they never see a half-applied reload.

    Selection policy when several playbooks match a case (`select`):
    1. the playbook that matched on more declared trigger dimensions
       (product, category, keywords) wins;
    2. then more keyword hits;
    3. then the most recently updated (`metadata.updatedAt`);
    4. then the lowest playbook id, so the choice is deterministic.
    """

    def __init__(self, playbooks: Iterable[Playbook] | None = None) -> None:
        self._write_lock = threading.Lock()
        self._playbooks: Mapping[str, Playbook] = MappingProxyType({})
        if playbooks is not None:
            self.load_all(playbooks)

    def load_all(self, playbooks: Iterable[Playbook | dict[str, Any]]) -> int:
        """Validate every definition, then publish them together.

        A single invalid definition aborts the load and leaves the current
        mapping untouched.
        """

        staged: dict[str, Playbook] = {}
        for item in playbooks:
            playbook = load_playbook(item)
            if playbook.id in staged:
                raise ValueError(f"Duplicate playbook id: {playbook.id}")
            staged[playbook.id] = playbook

        with self._write_lock:
            self._playbooks = MappingProxyType(staged)
        logger.info("Loaded %d playbooks", len(staged))
        return len(staged)

    def reload(self, playbooks: Iterable[Playbook | dict[str, Any]]) -> int:
        return self.load_all(playbooks)

    def load_directory(self, directory: str | Path) -> int:
        """Load every ``*.json`` file under `directory` (one playbook per file)."""

        root = Path(directory)
        if not root.is_dir():
            raise ValueError(f"Playbook directory does not exist: {root}")
        payloads = []
        for path in sorted(root.glob("*.json")):
            payloads.append(json.loads(path.read_text(encoding="utf-8")))
        return self.load_all(payloads)

    def get(self, playbook_id: str) -> Playbook | None:
        return self._playbooks.get(playbook_id)

    def all(self) -> list[Playbook]:
        return list(self._playbooks.values())

    def __len__(self) -> int:
        return len(self._playbooks)

    def find(
        self,
        *,
        product: str | None = None,
        category: str | None = None,
        keywords: list[str] | None = None,
    ) -> list[PlaybookMatch]:
        """Return every playbook whose declared triggers accept the criteria.

        A trigger dimension the playbook does not declare places no constraint
        on that criterion. Keywords match case-insensitively when either side
        contains the other.
        """

        snapshot = self._playbooks
        matches: list[PlaybookMatch] = []
        for playbook in snapshot.values():
            triggers = playbook.triggers
            dimensions = 0

            if product and triggers.products:
                if product not in triggers.products:
                    continue
                dimensions += 1

            if category and triggers.categories:
                if category not in triggers.categories:
                    continue
                dimensions += 1

            hits = 0
            if keywords and triggers.keywords:
                hits = _keyword_hits(keywords, triggers.keywords)
                if hits == 0:
                    continue
                dimensions += 1

            matches.append(
                PlaybookMatch(playbook=playbook, dimensions_matched=dimensions, keyword_hits=hits)
            )
        return matches

    def select(
        self,
        *,
        product: str | None = None,
        category: str | None = None,
        keywords: list[str] | None = None,
    ) -> Playbook | None:
        matches = self.find(product=product, category=category, keywords=keywords)
        if not matches:
            return None
        ranked = sorted(matches, key=lambda match: match.playbook.id)
        ranked.sort(
            key=lambda match: (
                match.dimensions_matched,
                match.keyword_hits,
                _updated_at(match.playbook),
            ),
            reverse=True,
        )
        return ranked[0].playbook


def _keyword_hits(criteria: list[str], trigger_keywords: list[str]) -> int:
    lowered = [keyword.lower() for keyword in trigger_keywords if keyword]
    hits = 0
    for word in criteria:
        candidate = word.lower()
        if not candidate:
            continue
        if any(tk in candidate or candidate in tk for tk in lowered):
            hits += 1
    return hits


def _updated_at(playbook: Playbook) -> datetime:
    if playbook.metadata is None or playbook.metadata.updated_at is None:
        return _EPOCH
    value = playbook.metadata.updated_at
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
