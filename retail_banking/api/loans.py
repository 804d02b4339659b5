"""
Loan calculator and application endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import (
    LoanCalculationRequest, CreateLoanApplicationRequest, ApproveLoanRequest,
    RejectLoanRequest, DisburseLoanRequest, loan_application_to_dict
)
from ..loans import LoanType, calculate_loan


router = APIRouter()


def _get_application_or_404(system: BankingSystem, application_id: str):
    application = system.loan_service.get_application(application_id)
    if not application:
        raise HTTPException(status_code=404, detail="Loan application not found")
    return application


@router.post("/calculate")
def calculate(request: LoanCalculationRequest):
    """Monthly payment, total interest and total payment for a fixed-rate loan"""
    try:
        quote = calculate_loan(request.principal, request.annual_rate, request.term_months)
    except (ArithmeticError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "monthly_payment": str(quote.monthly_payment),
        "total_interest": str(quote.total_interest),
        "total_payment": str(quote.total_payment)
    }


@router.post("/applications", status_code=status.HTTP_201_CREATED)
def create_application(
    request: CreateLoanApplicationRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    try:
        application = system.loan_service.create_application(
            user_id=request.user_id,
            loan_type=LoanType(request.loan_type),
            amount=request.amount,
            term_months=request.term_months,
            purpose=request.purpose
        )
    except (ArithmeticError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return loan_application_to_dict(application)


@router.get("/applications/user/{user_id}")
def list_user_applications(
    user_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    applications = system.loan_service.get_user_applications(user_id)
    return {"applications": [loan_application_to_dict(a) for a in applications]}


@router.get("/applications/{application_id}")
def get_application(
    application_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return loan_application_to_dict(_get_application_or_404(system, application_id))


@router.post("/applications/{application_id}/submit")
def submit_application(
    application_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_application_or_404(system, application_id)
    application = system.loan_service.submit_application(application_id)
    if not application:
        raise HTTPException(status_code=400, detail="Only draft applications can be submitted")
    return loan_application_to_dict(application)


@router.post("/applications/{application_id}/approve")
def approve_application(
    application_id: str,
    request: ApproveLoanRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_application_or_404(system, application_id)
    if not system.loan_service.approve_loan(application_id, request.approved_amount, request.interest_rate):
        raise HTTPException(status_code=400, detail="Loan approval failed")
    return loan_application_to_dict(_get_application_or_404(system, application_id))


@router.post("/applications/{application_id}/reject")
def reject_application(
    application_id: str,
    request: RejectLoanRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_application_or_404(system, application_id)
    if not system.loan_service.reject_loan(application_id, request.reason):
        raise HTTPException(status_code=400, detail="Loan rejection failed")
    return loan_application_to_dict(_get_application_or_404(system, application_id))


@router.post("/applications/{application_id}/disburse")
def disburse_application(
    application_id: str,
    request: DisburseLoanRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_application_or_404(system, application_id)
    if not system.loan_service.disburse_loan(application_id, request.account_id):
        raise HTTPException(status_code=400, detail="Loan disbursement failed")
    return loan_application_to_dict(_get_application_or_404(system, application_id))
