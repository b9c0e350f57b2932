from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gestao_acoes.core.security import get_current_user
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.services import notifications

router = APIRouter(tags=["Notificacoes"])


class NotificationResponse(BaseModel):
    id: str
    recipient_id: str
    sender_id: Optional[str] = None
    title: str
    content: str
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    read: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationSettingsResponse(BaseModel):
    email_enabled: bool
    whatsapp_enabled: bool
    sms_enabled: bool
    internal_enabled: bool
    reminder_before_hours: int
    reminder_frequency_hours: int

    class Config:
        from_attributes = True


class NotificationSettingsUpdate(BaseModel):
    email_enabled: Optional[bool] = None
    whatsapp_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    internal_enabled: Optional[bool] = None
    reminder_before_hours: Optional[int] = Field(default=None, ge=1)
    reminder_frequency_hours: Optional[int] = Field(default=None, ge=1)


@router.get("/notificacoes", response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return notifications.list_notifications(db, current_user, unread_only=unread_only)


@router.get("/notificacoes/nao-lidas")
def unread_count(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"count": notifications.unread_count(db, current_user)}


@router.post("/notificacoes/{notification_id}/lida", response_model=NotificationResponse)
def mark_as_read(
    notification_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return notifications.mark_as_read(db, current_user, notification_id)


@router.post("/notificacoes/lidas")
def mark_all_as_read(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"updated": notifications.mark_all_as_read(db, current_user)}


@router.delete("/notificacoes/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notifications.delete_notification(db, current_user, notification_id)


@router.get("/notificacoes/preferencias", response_model=NotificationSettingsResponse)
def get_settings(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return notifications.get_notification_settings(db, current_user)


@router.put("/notificacoes/preferencias", response_model=NotificationSettingsResponse)
def update_settings(
    payload: NotificationSettingsUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return notifications.update_notification_settings(
        db, current_user, payload.model_dump(exclude_unset=True)
    )
