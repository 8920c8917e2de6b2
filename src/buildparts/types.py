from __future__ import annotations

import enum
from typing import TypedDict


class EntryState(enum.StrEnum):
    """State of a compiled part in the local cache."""

    ABSENT = "absent"
    PRESENT = "present"
    CORRUPT = "corrupt"


class Mismatch(TypedDict):
    """A cached part whose content hash disagrees with the manifest."""

    logical_path: str
    expected_hash: str
    actual_hash: str | None


# Ordered by manifest position; empty means every part verified
VerificationReport = list[Mismatch]


class FetchSummary(TypedDict):
    """Byte and entry counts of a fetch stage."""

    downloaded_bytes: int
    downloaded_count: int
    reused_bytes: int
    reused_count: int
