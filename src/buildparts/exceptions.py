from __future__ import annotations

from typing import TYPE_CHECKING, override

if TYPE_CHECKING:
    from buildparts.types import Mismatch


class BuildPartsError(Exception):
    """Base exception for buildparts errors."""

    def format_user_message(self) -> str:
        """Format a user-friendly error message."""
        return str(self)

    def get_suggestion(self) -> str | None:
        """Return actionable suggestion for resolving the error."""
        return None


class BuildError(BuildPartsError):
    """Raised when the build reports a fatal condition."""

    pass


class ConfigError(BuildPartsError):
    """Raised when configuration cannot be read or fails validation."""

    @override
    def get_suggestion(self) -> str:
        return "Check buildparts.yaml against the documented config keys"


class ManifestError(BuildPartsError):
    """Raised when the compiled-parts manifest is missing or malformed."""

    @override
    def get_suggestion(self) -> str:
        return "Regenerate the manifest; it must contain 'files', 'prefix' and 'server-url'"


class CacheIOError(BuildPartsError):
    """Raised when the local parts cache cannot be read or written."""

    @override
    def get_suggestion(self) -> str:
        return "Check permissions and free space of the cache directory"


class NetworkError(BuildPartsError):
    """Raised when one or more parts cannot be fetched from the server."""

    _paths: list[str]

    def __init__(self, paths: list[str], details: list[str] | None = None) -> None:
        self._paths = paths
        lines = details if details is not None else paths
        listing = "\n".join(f"  - {line}" for line in lines)
        super().__init__(f"Failed to download {len(paths)} compiled part(s):\n{listing}")

    @property
    def paths(self) -> list[str]:
        return self._paths

    @override
    def get_suggestion(self) -> str:
        return "Check network connection and that the server still hosts these parts"

    @override
    def __reduce__(self) -> tuple[type, tuple[list[str], list[str] | None]]:
        return (self.__class__, (self._paths, None))


class IntegrityError(BuildPartsError):
    """Raised when cached parts do not match their expected hashes."""

    _mismatches: list[Mismatch]

    def __init__(self, mismatches: list[Mismatch]) -> None:
        self._mismatches = mismatches
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        listing = "\n".join(
            f"  - {m['logical_path']}: expected {m['expected_hash']}, got {m['actual_hash']}"
            for m in self._mismatches
        )
        return f"Hash mismatch for {len(self._mismatches)} compiled part(s):\n{listing}"

    @property
    def mismatches(self) -> list[Mismatch]:
        return self._mismatches

    @override
    def get_suggestion(self) -> str:
        return "Re-run to refetch; if it persists the server content differs from the manifest"

    @override
    def __reduce__(self) -> tuple[type, tuple[list[Mismatch]]]:
        return (self.__class__, (self._mismatches,))


class ExtractionError(BuildPartsError):
    """Raised when a compiled-classes archive cannot be extracted."""

    pass
