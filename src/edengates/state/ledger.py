"""
Device-local vote bookkeeping.

All state lives in one JSON file under the state directory, keyed by
namespace. The vote ledger is a hint against repeat votes from this
device, not an authoritative constraint: clearing the file clears it.
"""

import hashlib
import json
import logging
import os
import platform
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

VOTED_FOUNDERS_KEY = "edens-gates:voted-founder-ids"
UNRECORDED_VOTES_KEY = "edens-gates:unrecorded-votes"


class KeyValueStore:
    """A small JSON file of namespaced values."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed state file %s", self.path)
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)


class LocalVoteLedger:
    """
    Founders this device has voted for.

    Entries are only ever added.
    """

    def __init__(self, store: KeyValueStore, key: str = VOTED_FOUNDERS_KEY):
        self.store = store
        self.key = key
        self._ids: List[str] = self._load()

    def _load(self) -> List[str]:
        stored = self.store.get(self.key, [])
        if not isinstance(stored, list):
            logger.warning("Ignoring malformed vote ledger entry %s", self.key)
            return []
        return [str(founder_id) for founder_id in stored]

    def __contains__(self, founder_id: str) -> bool:
        return founder_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def has_voted(self, founder_id: str) -> bool:
        return founder_id in self._ids

    @property
    def founder_ids(self) -> List[str]:
        return list(self._ids)

    def add(self, founder_id: str) -> None:
        if founder_id in self._ids:
            return
        self._ids.append(founder_id)
        self.store.set(self.key, self._ids)


@dataclass
class UnrecordedVote:
    """A fee that was, or may have been, spent without a vote row."""
    founder_id: str
    signature: str
    wallet: Optional[str] = None
    ip_hash: Optional[str] = None
    reason: str = ""
    created_at: float = field(default_factory=time.time)


class UnrecordedVoteJournal:
    """Votes awaiting reconciliation, keyed by transaction signature."""

    def __init__(self, store: KeyValueStore, key: str = UNRECORDED_VOTES_KEY):
        self.store = store
        self.key = key

    def entries(self) -> List[UnrecordedVote]:
        raw = self.store.get(self.key, [])
        entries = []
        for item in raw if isinstance(raw, list) else []:
            try:
                entries.append(UnrecordedVote(**item))
            except TypeError:
                logger.warning("Skipping malformed journal entry: %r", item)
        return entries

    def pending_for(self, founder_id: str) -> Optional[UnrecordedVote]:
        """The unresolved entry for ``founder_id``, if any."""
        for entry in self.entries():
            if entry.founder_id == founder_id:
                return entry
        return None

    def add(self, entry: UnrecordedVote) -> None:
        entries = [e for e in self.entries() if e.signature != entry.signature]
        entries.append(entry)
        self._save(entries)

    def remove(self, signature: str) -> None:
        self._save([e for e in self.entries() if e.signature != signature])

    def _save(self, entries: List[UnrecordedVote]) -> None:
        self.store.set(self.key, [asdict(e) for e in entries])


def device_fingerprint() -> str:
    """SHA-256 over a platform description and the local timezone."""
    description = " ".join([
        platform.system(),
        platform.release(),
        platform.machine(),
        f"Python/{platform.python_version()}",
    ])
    payload = f"{description}::{'/'.join(time.tzname)}"
    return hashlib.sha256(payload.encode()).hexdigest()
