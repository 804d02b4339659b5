"""
Beneficiary Management Module

Saved payees attached to an owner account. Beneficiaries are never
physically deleted; removal deactivates them. Money movement to a
beneficiary is a ledger operation (``LedgerService.transfer_to_beneficiary``).
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime, format_datetime
from .audit import AuditTrail, AuditEventType
from .logging_config import get_logger, log_action


class BeneficiaryType(Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    UTILITY = "utility"


@dataclass
class Beneficiary(StorageRecord):
    """Saved payee owned by one account"""
    account_id: str
    name: str
    nickname: str
    beneficiary_type: BeneficiaryType
    account_number: str
    bank_name: Optional[str] = None
    is_active: bool = True
    last_used_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['beneficiary_type'] = self.beneficiary_type.value
        result['last_used_at'] = format_datetime(self.last_used_at)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Beneficiary':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['beneficiary_type'] = BeneficiaryType(data['beneficiary_type'])
        data['last_used_at'] = parse_datetime(data.get('last_used_at'))
        return cls(**data)


class BeneficiaryManager:
    """Add, list, rename and deactivate beneficiaries"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.beneficiaries_table = "beneficiaries"
        self.logger = get_logger("retail_banking.beneficiaries")

    def add_beneficiary(
        self,
        account_id: str,
        name: str,
        beneficiary_type: BeneficiaryType,
        account_number: str,
        nickname: Optional[str] = None,
        bank_name: Optional[str] = None
    ) -> Beneficiary:
        """Add a beneficiary; the nickname defaults to the name"""
        now = datetime.now(timezone.utc)
        beneficiary = Beneficiary(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            name=name,
            nickname=nickname or name,
            beneficiary_type=beneficiary_type,
            account_number=account_number,
            bank_name=bank_name
        )

        with self.storage.atomic():
            self.save_beneficiary(beneficiary)
            self.audit_trail.log_event(
                event_type=AuditEventType.BENEFICIARY_ADDED,
                entity_type="beneficiary",
                entity_id=beneficiary.id,
                metadata={
                    "account_id": account_id,
                    "beneficiary_type": beneficiary_type.value,
                    "account_number": account_number
                }
            )

        log_action(
            self.logger, "info", "Beneficiary added",
            action="add_beneficiary", resource=f"beneficiary:{beneficiary.id}",
            extra={"account_id": account_id}
        )
        return beneficiary

    def get_beneficiary(self, beneficiary_id: str) -> Optional[Beneficiary]:
        data = self.storage.load(self.beneficiaries_table, beneficiary_id)
        if data:
            return Beneficiary.from_dict(data)
        return None

    def get_beneficiaries(self, account_id: str) -> List[Beneficiary]:
        """Active beneficiaries of an account ordered by name"""
        beneficiaries = [
            Beneficiary.from_dict(data)
            for data in self.storage.find(
                self.beneficiaries_table, {"account_id": account_id, "is_active": True}
            )
        ]
        beneficiaries.sort(key=lambda b: b.name)
        return beneficiaries

    def update_beneficiary(self, beneficiary_id: str, nickname: str) -> bool:
        """Change a beneficiary's nickname"""
        with self.storage.atomic():
            beneficiary = self.get_beneficiary(beneficiary_id)
            if not beneficiary:
                return False

            beneficiary.nickname = nickname
            beneficiary.updated_at = datetime.now(timezone.utc)
            self.save_beneficiary(beneficiary)
            self.audit_trail.log_event(
                event_type=AuditEventType.BENEFICIARY_UPDATED,
                entity_type="beneficiary",
                entity_id=beneficiary.id,
                metadata={"nickname": nickname}
            )
        return True

    def delete_beneficiary(self, beneficiary_id: str) -> bool:
        """Deactivate a beneficiary; the record is kept"""
        with self.storage.atomic():
            beneficiary = self.get_beneficiary(beneficiary_id)
            if not beneficiary:
                return False

            beneficiary.is_active = False
            beneficiary.updated_at = datetime.now(timezone.utc)
            self.save_beneficiary(beneficiary)
            self.audit_trail.log_event(
                event_type=AuditEventType.BENEFICIARY_DEACTIVATED,
                entity_type="beneficiary",
                entity_id=beneficiary.id
            )
        return True

    def save_beneficiary(self, beneficiary: Beneficiary) -> None:
        self.storage.save(self.beneficiaries_table, beneficiary.id, beneficiary.to_dict())
