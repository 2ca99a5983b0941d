"""Device-local vote state and in-memory tallies."""

from .ledger import (
    KeyValueStore,
    LocalVoteLedger,
    UnrecordedVote,
    UnrecordedVoteJournal,
    device_fingerprint,
    VOTED_FOUNDERS_KEY,
    UNRECORDED_VOTES_KEY,
)
from .tally import Founder, FounderTally
