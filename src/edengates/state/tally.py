"""In-memory founder vote tallies."""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Founder:
    """An active founder and their vote count."""
    id: str
    name: str
    vote_count: int = 0
    handle: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    site_link: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Founder":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            vote_count=int(row.get("vote_count") or 0),
            handle=row.get("handle"),
            description=row.get("description"),
            video_url=row.get("video_url"),
            site_link=row.get("site_link"),
        )


class FounderTally:
    """
    Vote counts per founder, refreshed from the data store.

    Increments are optimistic until the vote is persisted; decrements
    never go below zero.
    """

    def __init__(self, founders: Optional[List[Founder]] = None):
        self._founders: Dict[str, Founder] = {}
        self.load(founders or [])

    def load(self, founders: List[Founder]) -> None:
        self._founders = {f.id: f for f in founders}

    async def refresh(self, store: Any) -> List[Founder]:
        rows = await store.get_active_founders_with_votes()
        self.load([Founder.from_row(row) for row in rows])
        return self.sorted()

    def get(self, founder_id: str) -> Optional[Founder]:
        return self._founders.get(founder_id)

    def count(self, founder_id: str) -> int:
        founder = self._founders.get(founder_id)
        return founder.vote_count if founder else 0

    def increment(self, founder_id: str) -> None:
        founder = self._founders.get(founder_id)
        if founder is None:
            logger.debug("Tally has no founder %s to increment", founder_id)
            return
        self._founders[founder_id] = replace(founder, vote_count=founder.vote_count + 1)

    def decrement(self, founder_id: str) -> None:
        founder = self._founders.get(founder_id)
        if founder is None:
            return
        self._founders[founder_id] = replace(founder, vote_count=max(founder.vote_count - 1, 0))

    def sorted(self) -> List[Founder]:
        return sorted(self._founders.values(), key=lambda f: f.vote_count, reverse=True)
