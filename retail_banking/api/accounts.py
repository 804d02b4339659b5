"""
Account and ledger endpoints
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import (
    OpenAccountRequest, AmountRequest, TransferRequest, MoneyModel,
    account_to_dict, transaction_to_dict
)
from ..accounts import AccountType
from ..currency import Currency


router = APIRouter()


def _get_account_or_404(system: BankingSystem, account_id: str):
    account = system.account_manager.get_account(account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.post("", status_code=status.HTTP_201_CREATED)
def open_account(
    request: OpenAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a new account with zero balance"""
    try:
        account = system.account_manager.open_account(
            user_id=request.user_id,
            account_type=AccountType(request.account_type),
            name=request.name,
            currency=Currency.from_code(request.currency),
            account_number=request.account_number
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return account_to_dict(account)


@router.post("/transfer")
def transfer(
    request: TransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Transfer between two accounts"""
    _get_account_or_404(system, request.from_account_id)
    _get_account_or_404(system, request.to_account_id)

    if not system.ledger.transfer(
        request.from_account_id, request.to_account_id, request.amount, request.description
    ):
        raise HTTPException(status_code=400, detail="Transfer failed")

    return {
        "from_account": account_to_dict(system.account_manager.get_account(request.from_account_id)),
        "to_account": account_to_dict(system.account_manager.get_account(request.to_account_id))
    }


@router.get("/user/{user_id}")
def get_user_accounts(
    user_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Active accounts of a user"""
    accounts = system.account_manager.get_user_accounts(user_id)
    return {"accounts": [account_to_dict(a) for a in accounts]}


@router.get("/user/{user_id}/total-balance")
def get_total_balance(
    user_id: str,
    currency: str = "USD",
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        total = system.account_manager.get_total_balance(user_id, Currency.from_code(currency))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"user_id": user_id, "total_balance": MoneyModel.from_money(total).model_dump()}


@router.get("/{account_id}")
def get_account(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    return account_to_dict(_get_account_or_404(system, account_id))


@router.post("/{account_id}/deposit")
def deposit(
    account_id: str,
    request: AmountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_account_or_404(system, account_id)
    if not system.ledger.deposit(account_id, request.amount, request.description):
        raise HTTPException(status_code=400, detail="Deposit failed")
    return account_to_dict(system.account_manager.get_account(account_id))


@router.post("/{account_id}/withdraw")
def withdraw(
    account_id: str,
    request: AmountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_account_or_404(system, account_id)
    if not system.ledger.withdraw(account_id, request.amount, request.description):
        raise HTTPException(status_code=400, detail="Withdrawal failed")
    return account_to_dict(system.account_manager.get_account(account_id))


@router.post("/{account_id}/deactivate")
def deactivate_account(
    account_id: str,
    reason: str = "Closed by customer",
    system: BankingSystem = Depends(get_banking_system)
):
    _get_account_or_404(system, account_id)
    if not system.account_manager.deactivate_account(account_id, reason):
        raise HTTPException(status_code=400, detail="Account is already inactive")
    return {"account_id": account_id, "is_active": False}


@router.get("/{account_id}/transactions")
def get_account_transactions(
    account_id: str,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    category: Optional[str] = None,
    system: BankingSystem = Depends(get_banking_system)
):
    """Transaction history for an account, newest first"""
    _get_account_or_404(system, account_id)
    transactions = system.transaction_history.get_transactions(
        account_id, from_date=from_date, to_date=to_date, category=category
    )
    return {"transactions": [transaction_to_dict(t) for t in transactions]}


@router.get("/{account_id}/transactions/search")
def search_transactions(
    account_id: str,
    q: str,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_account_or_404(system, account_id)
    transactions = system.transaction_history.search_transactions(account_id, q)
    return {"transactions": [transaction_to_dict(t) for t in transactions]}


@router.get("/{account_id}/spending")
def get_spending_by_category(
    account_id: str,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=1, le=9998),
    system: BankingSystem = Depends(get_banking_system)
):
    """Debits during one month grouped by category"""
    _get_account_or_404(system, account_id)
    try:
        spending = system.transaction_history.get_spending_by_category(account_id, month, year)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"spending": {category: str(total) for category, total in spending.items()}}
