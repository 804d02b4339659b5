"""
Beneficiary endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import (
    CreateBeneficiaryRequest, UpdateBeneficiaryRequest, BeneficiaryTransferRequest,
    beneficiary_to_dict, account_to_dict
)
from ..beneficiaries import BeneficiaryType


router = APIRouter()


def _get_beneficiary_or_404(system: BankingSystem, beneficiary_id: str):
    beneficiary = system.beneficiary_manager.get_beneficiary(beneficiary_id)
    if not beneficiary:
        raise HTTPException(status_code=404, detail="Beneficiary not found")
    return beneficiary


@router.post("", status_code=status.HTTP_201_CREATED)
def add_beneficiary(
    request: CreateBeneficiaryRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    if not system.account_manager.get_account(request.account_id):
        raise HTTPException(status_code=404, detail="Account not found")
    try:
        beneficiary_type = BeneficiaryType(request.beneficiary_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    beneficiary = system.beneficiary_manager.add_beneficiary(
        account_id=request.account_id,
        name=request.name,
        beneficiary_type=beneficiary_type,
        account_number=request.account_number,
        nickname=request.nickname,
        bank_name=request.bank_name
    )
    return beneficiary_to_dict(beneficiary)


@router.get("/account/{account_id}")
def list_beneficiaries(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    beneficiaries = system.beneficiary_manager.get_beneficiaries(account_id)
    return {"beneficiaries": [beneficiary_to_dict(b) for b in beneficiaries]}


@router.get("/{beneficiary_id}")
def get_beneficiary(
    beneficiary_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return beneficiary_to_dict(_get_beneficiary_or_404(system, beneficiary_id))


@router.patch("/{beneficiary_id}")
def update_beneficiary(
    beneficiary_id: str,
    request: UpdateBeneficiaryRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_beneficiary_or_404(system, beneficiary_id)
    system.beneficiary_manager.update_beneficiary(beneficiary_id, request.nickname)
    return beneficiary_to_dict(_get_beneficiary_or_404(system, beneficiary_id))


@router.delete("/{beneficiary_id}")
def delete_beneficiary(
    beneficiary_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Deactivate a beneficiary"""
    _get_beneficiary_or_404(system, beneficiary_id)
    system.beneficiary_manager.delete_beneficiary(beneficiary_id)
    return {"beneficiary_id": beneficiary_id, "is_active": False}


@router.post("/{beneficiary_id}/transfer")
def transfer_to_beneficiary(
    beneficiary_id: str,
    request: BeneficiaryTransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Pay a beneficiary from the account that owns it"""
    beneficiary = _get_beneficiary_or_404(system, beneficiary_id)
    if not system.ledger.transfer_to_beneficiary(
        beneficiary.account_id, beneficiary_id, request.amount, request.description
    ):
        raise HTTPException(status_code=400, detail="Transfer failed")
    return account_to_dict(system.account_manager.get_account(beneficiary.account_id))
