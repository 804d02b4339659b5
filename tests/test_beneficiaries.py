"""
Tests for beneficiary management
"""

from retail_banking.storage import InMemoryStorage
from retail_banking.audit import AuditTrail, AuditEventType
from retail_banking.beneficiaries import BeneficiaryManager, BeneficiaryType


class TestBeneficiaryManager:
    """Adding, listing, renaming and deactivating beneficiaries"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)
        self.manager = BeneficiaryManager(self.storage, self.audit)

    def test_add_beneficiary(self):
        """Nickname defaults to the name and the addition is audited"""
        beneficiary = self.manager.add_beneficiary(
            "acc1", "City Power", BeneficiaryType.UTILITY, "CP-778812"
        )

        assert beneficiary.nickname == "City Power"
        assert beneficiary.is_active
        stored = self.manager.get_beneficiary(beneficiary.id)
        assert stored.beneficiary_type == BeneficiaryType.UTILITY
        assert len(self.audit.get_events_by_type(AuditEventType.BENEFICIARY_ADDED)) == 1

    def test_listing_is_active_and_sorted(self):
        """Only active beneficiaries of the account, ordered by name"""
        zed = self.manager.add_beneficiary("acc1", "Zed", BeneficiaryType.INTERNAL, "ACC2")
        amy = self.manager.add_beneficiary("acc1", "Amy", BeneficiaryType.EXTERNAL, "DE89370400440532013000")
        gone = self.manager.add_beneficiary("acc1", "Gone", BeneficiaryType.EXTERNAL, "X")
        self.manager.add_beneficiary("acc2", "Other", BeneficiaryType.EXTERNAL, "Y")

        assert self.manager.delete_beneficiary(gone.id)
        assert [b.id for b in self.manager.get_beneficiaries("acc1")] == [amy.id, zed.id]

    def test_update_nickname(self):
        """Nicknames can be changed on existing beneficiaries only"""
        beneficiary = self.manager.add_beneficiary(
            "acc1", "Jane Smith", BeneficiaryType.EXTERNAL, "123", nickname="Jane"
        )
        assert beneficiary.nickname == "Jane"

        assert self.manager.update_beneficiary(beneficiary.id, "Sis")
        assert self.manager.get_beneficiary(beneficiary.id).nickname == "Sis"
        assert not self.manager.update_beneficiary("missing", "x")

    def test_delete_is_soft(self):
        """Deleted beneficiaries remain stored but inactive"""
        beneficiary = self.manager.add_beneficiary("acc1", "Old", BeneficiaryType.EXTERNAL, "1")

        assert self.manager.delete_beneficiary(beneficiary.id)
        assert not self.manager.delete_beneficiary("missing")

        stored = self.manager.get_beneficiary(beneficiary.id)
        assert stored is not None
        assert not stored.is_active
