"""
Ledger entry lookups
"""

from fastapi import APIRouter, HTTPException, Depends

from .dependencies import BankingSystem, get_banking_system
from .schemas import transaction_to_dict


router = APIRouter()


@router.get("/reference/{reference_number}")
def get_transaction_by_reference(
    reference_number: str,
    system: BankingSystem = Depends(get_banking_system)
):
    txn = system.transaction_history.get_transaction_by_reference(reference_number)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction_to_dict(txn)


@router.get("/{transaction_id}")
def get_transaction(
    transaction_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    txn = system.transaction_history.get_transaction(transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction_to_dict(txn)
