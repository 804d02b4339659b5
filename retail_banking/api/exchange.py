"""
Currency exchange endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import ExchangeRequest, UpdateRateRequest, exchange_to_dict, rate_to_dict


router = APIRouter()


@router.get("/rates")
def list_rates(system: BankingSystem = Depends(get_banking_system)):
    """Current exchange rates"""
    return {"rates": [rate_to_dict(r) for r in system.exchange_service.get_all_rates()]}


@router.put("/rates")
def update_rate(
    request: UpdateRateRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Insert or update the rate for a currency pair"""
    try:
        rate = system.exchange_service.update_exchange_rate(
            request.base_currency, request.target_currency, request.rate,
            request.buy_spread, request.sell_spread, request.expiry_date
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return rate_to_dict(rate)


@router.get("/quote")
def quote(
    from_currency: str,
    to_currency: str,
    amount: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Converted amount before fees (zero when no rate exists)"""
    try:
        converted = system.exchange_service.calculate_exchange_amount(from_currency, to_currency, amount)
    except (ArithmeticError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"from_currency": from_currency, "to_currency": to_currency,
            "amount": amount, "converted_amount": str(converted)}


@router.post("", status_code=status.HTTP_201_CREATED)
def exchange_currency(
    request: ExchangeRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Exchange money between a user's accounts"""
    exchange = system.exchange_service.exchange_currency(
        user_id=request.user_id,
        source_account_id=request.source_account_id,
        from_currency=request.from_currency,
        to_currency=request.to_currency,
        amount=request.amount,
        destination_account_id=request.destination_account_id
    )
    if not exchange:
        raise HTTPException(status_code=400, detail="Currency exchange failed")
    return exchange_to_dict(exchange)


@router.get("/user/{user_id}")
def list_user_exchanges(
    user_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    exchanges = system.exchange_service.get_user_exchanges(user_id)
    return {"exchanges": [exchange_to_dict(e) for e in exchanges]}


@router.get("/{exchange_id}")
def get_exchange(
    exchange_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    exchange = system.exchange_service.get_exchange(exchange_id)
    if not exchange:
        raise HTTPException(status_code=404, detail="Exchange not found")
    return exchange_to_dict(exchange)
