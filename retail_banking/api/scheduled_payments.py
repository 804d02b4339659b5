"""
Scheduled payment endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import CreateScheduledPaymentRequest, ProcessDueRequest, scheduled_payment_to_dict
from ..scheduled_payments import PaymentFrequency


router = APIRouter()


def _get_payment_or_404(system: BankingSystem, payment_id: str):
    payment = system.scheduled_payment_service.get_scheduled_payment(payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Scheduled payment not found")
    return payment


@router.post("", status_code=status.HTTP_201_CREATED)
def create_scheduled_payment(
    request: CreateScheduledPaymentRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        payment = system.scheduled_payment_service.create_scheduled_payment(
            account_id=request.account_id,
            name=request.name,
            amount=request.amount,
            frequency=PaymentFrequency(request.frequency),
            start_date=request.start_date,
            beneficiary_id=request.beneficiary_id,
            destination_account_id=request.destination_account_id,
            end_date=request.end_date,
            max_executions=request.max_executions
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return scheduled_payment_to_dict(payment)


@router.post("/process-due")
def process_due_payments(
    request: Optional[ProcessDueRequest] = None,
    system: BankingSystem = Depends(get_banking_system)
):
    """Run the due-payment sweep once"""
    as_of = request.as_of if request else None
    processed = system.scheduled_payment_service.process_due_payments(as_of)
    return {"processed": processed}


@router.get("/account/{account_id}")
def list_scheduled_payments(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    payments = system.scheduled_payment_service.get_scheduled_payments(account_id)
    return {"scheduled_payments": [scheduled_payment_to_dict(p) for p in payments]}


@router.get("/{payment_id}")
def get_scheduled_payment(
    payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return scheduled_payment_to_dict(_get_payment_or_404(system, payment_id))


@router.post("/{payment_id}/execute")
def execute_scheduled_payment(
    payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_payment_or_404(system, payment_id)
    if not system.scheduled_payment_service.execute_scheduled_payment(payment_id):
        raise HTTPException(status_code=400, detail="Scheduled payment failed")
    return scheduled_payment_to_dict(_get_payment_or_404(system, payment_id))


@router.post("/{payment_id}/pause")
def pause_scheduled_payment(
    payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_payment_or_404(system, payment_id)
    if not system.scheduled_payment_service.pause_scheduled_payment(payment_id):
        raise HTTPException(status_code=400, detail="Only active payments can be paused")
    return scheduled_payment_to_dict(_get_payment_or_404(system, payment_id))


@router.post("/{payment_id}/resume")
def resume_scheduled_payment(
    payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_payment_or_404(system, payment_id)
    if not system.scheduled_payment_service.resume_scheduled_payment(payment_id):
        raise HTTPException(status_code=400, detail="Only paused payments can be resumed")
    return scheduled_payment_to_dict(_get_payment_or_404(system, payment_id))


@router.post("/{payment_id}/cancel")
def cancel_scheduled_payment(
    payment_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_payment_or_404(system, payment_id)
    system.scheduled_payment_service.cancel_scheduled_payment(payment_id)
    return scheduled_payment_to_dict(_get_payment_or_404(system, payment_id))
