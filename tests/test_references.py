"""
Tests for reference number generation
"""

import pytest
from datetime import datetime, timezone

from retail_banking.storage import InMemoryStorage
from retail_banking.references import ReferenceNumberGenerator
from retail_banking.exceptions import ReferenceCollisionError


FIXED_TIME = datetime(2024, 3, 15, 9, 30, 0, tzinfo=timezone.utc)


class TestReferenceNumberGenerator:
    """Test format and collision handling"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.generator = ReferenceNumberGenerator(
            self.storage, "transactions", clock=lambda: FIXED_TIME
        )

    def _store(self, reference):
        self.storage.save("transactions", reference, {"id": reference, "reference_number": reference})

    def test_format(self):
        """Prefix, UTC timestamp and numeric suffix"""
        reference = self.generator.generate("TXN")
        assert reference.startswith("TXN20240315093000")
        suffix = reference[len("TXN20240315093000"):]
        assert len(suffix) == 8
        assert suffix.isdigit()

    def test_account_number_format(self):
        """Date-only timestamp with a six digit suffix"""
        generator = ReferenceNumberGenerator(
            self.storage, "accounts", field="account_number",
            timestamp_format="%Y%m%d", suffix_digits=6, clock=lambda: FIXED_TIME
        )
        number = generator.generate("ACC")
        assert number.startswith("ACC20240315")
        assert len(number) == len("ACC20240315") + 6

    def test_taken_candidate_is_retried(self, monkeypatch):
        """A stored candidate is skipped"""
        self._store("TXN1")
        candidates = iter(["TXN1", "TXN2"])
        monkeypatch.setattr(self.generator, "_candidate", lambda prefix: next(candidates))

        assert self.generator.generate("TXN") == "TXN2"

    def test_variants_are_checked(self, monkeypatch):
        """A candidate is refused when any variant is taken"""
        self._store("TXN1-R")
        candidates = iter(["TXN1", "TXN2"])
        monkeypatch.setattr(self.generator, "_candidate", lambda prefix: next(candidates))

        assert self.generator.generate("TXN", variants=("", "-R")) == "TXN2"

    def test_exhausted_attempts_raise(self, monkeypatch):
        """Running out of attempts raises instead of reusing a reference"""
        self._store("TXN1")
        monkeypatch.setattr(self.generator, "_candidate", lambda prefix: "TXN1")

        with pytest.raises(ReferenceCollisionError):
            self.generator.generate("TXN")
