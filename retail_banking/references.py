"""
Reference Number Generation

Human-readable unique codes for accounts, ledger entries, bills, exchanges
and loan applications: ``<PREFIX><UTC timestamp><numeric suffix>``. Card
numbers use the same generator without the timestamp part. The
suffix is derived from a UUID4 and every candidate is checked against the
store before it is handed out.
"""

from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
import uuid

from .storage import StorageInterface
from .exceptions import ReferenceCollisionError


class ReferenceNumberGenerator:
    """
    Generates reference numbers that are unique within one table field.

    Args:
        storage: Backend holding the records to check against
        table: Table whose ``field`` must stay unique
        field: Record key holding the reference
        timestamp_format: strftime pattern for the timestamp part
        suffix_digits: Length of the numeric suffix
        max_attempts: Candidates tried before giving up
    """

    def __init__(
        self,
        storage: StorageInterface,
        table: str,
        field: str = "reference_number",
        timestamp_format: str = "%Y%m%d%H%M%S",
        suffix_digits: int = 8,
        max_attempts: int = 5,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage = storage
        self.table = table
        self.field = field
        self.timestamp_format = timestamp_format
        self.suffix_digits = suffix_digits
        self.max_attempts = max_attempts
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _candidate(self, prefix: str) -> str:
        stamp = self._clock().strftime(self.timestamp_format)
        suffix = uuid.uuid4().int % (10 ** self.suffix_digits)
        return f"{prefix}{stamp}{suffix:0{self.suffix_digits}d}"

    def is_taken(self, reference: str) -> bool:
        """Check whether a reference is already stored"""
        return bool(self.storage.find(self.table, {self.field: reference}))

    def generate(self, prefix: str, variants: Iterable[str] = ("",)) -> str:
        """
        Generate a reference whose every variant (reference + variant
        suffix, e.g. ``"-R"`` for the credit leg of a transfer) is unused.

        Raises:
            ReferenceCollisionError: If no free reference was found
        """
        variants = tuple(variants)
        for _ in range(self.max_attempts):
            candidate = self._candidate(prefix)
            if not any(self.is_taken(candidate + variant) for variant in variants):
                return candidate

        raise ReferenceCollisionError(
            f"No unique {prefix} reference after {self.max_attempts} attempts"
        )
