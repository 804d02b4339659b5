"""
Bill payment endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import CreateBillPaymentRequest, bill_to_dict
from ..bill_payments import BillCategory, BillPaymentStatus


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_bill_payment(
    request: CreateBillPaymentRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a pending bill"""
    try:
        bill = system.bill_payment_service.create_bill_payment(
            account_id=request.account_id,
            provider_name=request.provider_name,
            customer_account_number=request.customer_account_number,
            category=BillCategory(request.category),
            amount=request.amount,
            due_date=request.due_date,
            service_fee=request.service_fee
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return bill_to_dict(bill)


@router.get("/account/{account_id}")
def list_bill_payments(
    account_id: str,
    status_name: Optional[str] = Query(None, alias="status"),
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        status_filter = BillPaymentStatus(status_name) if status_name else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    bills = system.bill_payment_service.get_bill_payments(account_id, status_filter)
    return {"bill_payments": [bill_to_dict(b) for b in bills]}


@router.get("/account/{account_id}/upcoming")
def list_upcoming_bills(
    account_id: str,
    days_ahead: Optional[int] = None,
    system: BankingSystem = Depends(get_banking_system)
):
    bills = system.bill_payment_service.get_upcoming_bills(account_id, days_ahead)
    return {"bill_payments": [bill_to_dict(b) for b in bills]}


@router.get("/{bill_payment_id}")
def get_bill_payment(
    bill_payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    bill = system.bill_payment_service.get_bill_payment(bill_payment_id)
    if not bill:
        raise HTTPException(status_code=404, detail="Bill payment not found")
    return bill_to_dict(bill)


@router.post("/{bill_payment_id}/pay")
def pay_bill(
    bill_payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Pay a pending bill from its account"""
    if not system.bill_payment_service.get_bill_payment(bill_payment_id):
        raise HTTPException(status_code=404, detail="Bill payment not found")
    if not system.bill_payment_service.pay_bill(bill_payment_id):
        raise HTTPException(status_code=400, detail="Bill payment failed")
    return bill_to_dict(system.bill_payment_service.get_bill_payment(bill_payment_id))


@router.post("/{bill_payment_id}/cancel")
def cancel_bill_payment(
    bill_payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    if not system.bill_payment_service.get_bill_payment(bill_payment_id):
        raise HTTPException(status_code=404, detail="Bill payment not found")
    if not system.bill_payment_service.cancel_bill_payment(bill_payment_id):
        raise HTTPException(status_code=400, detail="Only pending bills can be cancelled")
    return bill_to_dict(system.bill_payment_service.get_bill_payment(bill_payment_id))
