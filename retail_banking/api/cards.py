"""
Card endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import (
    IssueCardRequest, BlockCardRequest, UpdateCardLimitsRequest, PinRequest, ToggleRequest,
    card_to_dict
)
from ..cards import CardType


router = APIRouter()


def _get_card_or_404(system: BankingSystem, card_id: str):
    card = system.card_manager.get_card(card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


@router.post("", status_code=status.HTTP_201_CREATED)
def issue_card(
    request: IssueCardRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Issue a card for an active account"""
    try:
        card = system.card_manager.issue_card(
            request.account_id, CardType(request.card_type), request.cardholder_name
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return card_to_dict(card)


@router.get("/account/{account_id}")
def list_account_cards(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    cards = system.card_manager.get_account_cards(account_id)
    return {"cards": [card_to_dict(c) for c in cards]}


@router.get("/user/{user_id}")
def list_user_cards(
    user_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    cards = system.card_manager.get_user_cards(user_id)
    return {"cards": [card_to_dict(c) for c in cards]}


@router.get("/number/{card_number}")
def get_card_by_number(
    card_number: str,
    system: BankingSystem = Depends(get_banking_system)
):
    card = system.card_manager.get_card_by_number(card_number)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return card_to_dict(card)


@router.get("/{card_id}")
def get_card(
    card_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return card_to_dict(_get_card_or_404(system, card_id))


@router.post("/{card_id}/block")
def block_card(
    card_id: str,
    request: BlockCardRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_card_or_404(system, card_id)
    if not system.card_manager.block_card(card_id, request.reason):
        raise HTTPException(status_code=400, detail="Card cannot be blocked")
    return card_to_dict(_get_card_or_404(system, card_id))


def _transition(system: BankingSystem, card_id: str, change, action: str):
    _get_card_or_404(system, card_id)
    if not change(card_id):
        raise HTTPException(status_code=400, detail=f"Card cannot be {action}")
    return card_to_dict(_get_card_or_404(system, card_id))


@router.post("/{card_id}/unblock")
def unblock_card(card_id: str, system: BankingSystem = Depends(get_banking_system)):
    return _transition(system, card_id, system.card_manager.unblock_card, "unblocked")


@router.post("/{card_id}/freeze")
def freeze_card(card_id: str, system: BankingSystem = Depends(get_banking_system)):
    return _transition(system, card_id, system.card_manager.freeze_card, "frozen")


@router.post("/{card_id}/unfreeze")
def unfreeze_card(card_id: str, system: BankingSystem = Depends(get_banking_system)):
    return _transition(system, card_id, system.card_manager.unfreeze_card, "unfrozen")


@router.post("/{card_id}/cancel")
def cancel_card(card_id: str, system: BankingSystem = Depends(get_banking_system)):
    return _transition(system, card_id, system.card_manager.cancel_card, "cancelled")


@router.put("/{card_id}/limits")
def update_limits(
    card_id: str,
    request: UpdateCardLimitsRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_card_or_404(system, card_id)
    try:
        updated = system.card_manager.update_limits(
            card_id,
            daily_withdrawal_limit=request.daily_withdrawal_limit,
            daily_transaction_limit=request.daily_transaction_limit,
            online_transaction_limit=request.online_transaction_limit
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=400, detail="Card cannot be changed")
    return card_to_dict(_get_card_or_404(system, card_id))


@router.post("/{card_id}/pin")
def set_pin(
    card_id: str,
    request: PinRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_card_or_404(system, card_id)
    try:
        updated = system.card_manager.set_pin(card_id, request.pin)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=400, detail="Card cannot be changed")
    return {"card_id": card_id, "pin_set": True}


@router.post("/{card_id}/pin/validate")
def validate_pin(
    card_id: str,
    request: PinRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Check a PIN; repeated failures block the card"""
    _get_card_or_404(system, card_id)
    return {"card_id": card_id, "valid": system.card_manager.validate_pin(card_id, request.pin)}


@router.post("/{card_id}/online-payments")
def toggle_online_payments(
    card_id: str,
    request: ToggleRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_card_or_404(system, card_id)
    if not system.card_manager.set_online_payments(card_id, request.enabled):
        raise HTTPException(status_code=400, detail="Card cannot be changed")
    return card_to_dict(_get_card_or_404(system, card_id))


@router.post("/{card_id}/international-payments")
def toggle_international_payments(
    card_id: str,
    request: ToggleRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    _get_card_or_404(system, card_id)
    if not system.card_manager.set_international_payments(card_id, request.enabled):
        raise HTTPException(status_code=400, detail="Card cannot be changed")
    return card_to_dict(_get_card_or_404(system, card_id))
