"""
In-app notification endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .dependencies import BankingSystem, get_banking_system
from .schemas import notification_to_dict


router = APIRouter()


@router.get("/user/{user_id}")
def list_notifications(
    user_id: str,
    unread_only: bool = False,
    system: BankingSystem = Depends(get_banking_system)
):
    notifications = system.notification_service.get_user_notifications(user_id, unread_only)
    return {
        "notifications": [notification_to_dict(n) for n in notifications],
        "unread_count": system.notification_service.get_unread_count(user_id)
    }


@router.post("/user/{user_id}/read-all")
def mark_all_read(
    user_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return {"marked": system.notification_service.mark_all_as_read(user_id)}


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    if not system.notification_service.mark_as_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found or already read")
    return {"notification_id": notification_id, "is_read": True}
