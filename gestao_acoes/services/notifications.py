"""Notificacoes internas ligadas as acoes.

O envio e feito por destinatario: uma falha com um destinatario nao impede
as tentativas com os demais.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gestao_acoes.core.errors import NotFoundError, ValidationError
from gestao_acoes.db import models
from gestao_acoes.db.session import commit_or_rollback
from gestao_acoes.services import email as email_service
from gestao_acoes.services.directory import linked_responsible_ids

logger = logging.getLogger("gestao_acoes.notifications")

ACTION_REFERENCE_TYPE = "acao"
RECIPIENT_ROLES = ("responsible", "requester", "creator")
ROLE_LABELS = {
    "responsible": "responsável",
    "requester": "solicitante",
    "creator": "criador",
}


@dataclass
class DispatchResult:
    success: bool
    recipients: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def _settings_for(db: Session, user_id: str) -> models.UserNotificationSettings | None:
    return (
        db.query(models.UserNotificationSettings)
        .filter(models.UserNotificationSettings.user_id == user_id)
        .first()
    )


def _email_target(db: Session, recipient_id: str) -> Optional[str]:
    """Email do destinatario, se ele aceitar notificacoes por email."""
    user = db.query(models.User).filter(models.User.id == recipient_id).first()
    address = user.email if user else None
    if not user:
        responsible = (
            db.query(models.Responsible).filter(models.Responsible.id == recipient_id).first()
        )
        if not responsible:
            return None
        address = responsible.email
        if responsible.user_id:
            user = db.query(models.User).filter(models.User.id == responsible.user_id).first()
    if user:
        prefs = _settings_for(db, user.id)
        if prefs and not prefs.email_enabled:
            return None
    return address


def _send_email_copy(db: Session, recipient_id: str, title: str, body: str) -> None:
    if not email_service.is_email_configured():
        return
    address = _email_target(db, recipient_id)
    if not address:
        return
    try:
        email_service.send_email([address], title, body)
    except email_service.EmailError as exc:
        logger.warning("Falha ao enviar copia por email para %s: %s", recipient_id, exc)


def send_internal_notification(
    db: Session,
    recipient_id: Optional[str],
    sender_id: Optional[str],
    title: str,
    body: str,
    reference_id: Optional[str] = None,
    reference_type: Optional[str] = None,
) -> bool:
    if not recipient_id or not recipient_id.strip():
        logger.error("ID de destinatario invalido (vazio)")
        return False
    notification = models.InternalNotification(
        recipient_id=recipient_id.strip(),
        sender_id=sender_id,
        title=title,
        content=body,
        reference_id=reference_id,
        reference_type=reference_type,
    )
    try:
        db.add(notification)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Erro ao enviar notificacao interna para %s", recipient_id)
        return False
    logger.info("Notificacao interna enviada para %s ref=%s", recipient_id, reference_id)
    _send_email_copy(db, notification.recipient_id, title, body)
    return True


def send_approval_notification(
    db: Session, requester_id: str, sender_id: Optional[str], action: models.Action
) -> bool:
    return send_internal_notification(
        db,
        requester_id,
        sender_id,
        f"Ação aguardando aprovação: {action.subject}",
        (
            f'A ação "{action.subject}" foi marcada como concluída e está aguardando sua '
            "aprovação. Por favor, verifique os detalhes e aprove ou reprove."
        ),
        action.id,
        ACTION_REFERENCE_TYPE,
    )


def notify_action(
    db: Session,
    action: models.Action,
    sender_id: Optional[str],
    message: str,
    roles: Iterable[str],
) -> DispatchResult:
    roles = set(roles or [])
    if not roles:
        raise ValidationError("Selecione pelo menos um destinatario")
    unknown = roles.difference(RECIPIENT_ROLES)
    if unknown:
        raise ValidationError("Destinatario invalido: " + ", ".join(sorted(unknown)))
    if not message or not message.strip():
        raise ValidationError("Digite uma mensagem para enviar")

    targets = {
        "responsible": action.responsible_id,
        "requester": action.requester_id,
        "creator": action.created_by,
    }
    result = DispatchResult(success=False)
    for role in RECIPIENT_ROLES:
        if role not in roles:
            continue
        recipient_id = targets[role]
        label = ROLE_LABELS[role]
        if not recipient_id:
            result.failed.append(label)
            continue
        try:
            sent = send_internal_notification(
                db,
                recipient_id,
                sender_id,
                f"Notificação sobre ação: {action.subject}",
                message.strip(),
                action.id,
                ACTION_REFERENCE_TYPE,
            )
        except Exception:
            logger.exception("Erro ao notificar %s da acao %s", label, action.id)
            sent = False
        if sent:
            result.recipients.append(label)
        else:
            result.failed.append(label)
    result.success = bool(result.recipients)
    return result


# Caixa de entrada


def _inbox_ids(db: Session, user: models.User) -> list[str]:
    return [user.id, *linked_responsible_ids(db, user)]


def list_notifications(
    db: Session, user: models.User, unread_only: bool = False
) -> list[models.InternalNotification]:
    query = db.query(models.InternalNotification).filter(
        models.InternalNotification.recipient_id.in_(_inbox_ids(db, user))
    )
    if unread_only:
        query = query.filter(models.InternalNotification.read.is_(False))
    return query.order_by(models.InternalNotification.created_at.desc()).all()


def unread_count(db: Session, user: models.User) -> int:
    return (
        db.query(models.InternalNotification)
        .filter(
            models.InternalNotification.recipient_id.in_(_inbox_ids(db, user)),
            models.InternalNotification.read.is_(False),
        )
        .count()
    )


def _get_owned(db: Session, user: models.User, notification_id: str) -> models.InternalNotification:
    notification = (
        db.query(models.InternalNotification)
        .filter(
            models.InternalNotification.id == notification_id,
            models.InternalNotification.recipient_id.in_(_inbox_ids(db, user)),
        )
        .first()
    )
    if not notification:
        raise NotFoundError("Notificacao nao encontrada")
    return notification


def mark_as_read(db: Session, user: models.User, notification_id: str) -> models.InternalNotification:
    notification = _get_owned(db, user, notification_id)
    notification.read = True
    notification.updated_at = datetime.utcnow()
    commit_or_rollback(db, "notificacao")
    db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user: models.User) -> int:
    updated = (
        db.query(models.InternalNotification)
        .filter(
            models.InternalNotification.recipient_id.in_(_inbox_ids(db, user)),
            models.InternalNotification.read.is_(False),
        )
        .update({"read": True, "updated_at": datetime.utcnow()}, synchronize_session=False)
    )
    commit_or_rollback(db, "notificacoes")
    return updated


def delete_notification(db: Session, user: models.User, notification_id: str) -> None:
    notification = _get_owned(db, user, notification_id)
    db.delete(notification)
    commit_or_rollback(db, "notificacao")


# Preferencias


def get_notification_settings(db: Session, user: models.User) -> models.UserNotificationSettings:
    prefs = _settings_for(db, user.id)
    if prefs:
        return prefs
    prefs = models.UserNotificationSettings(
        user_id=user.id,
        email_enabled=True,
        whatsapp_enabled=False,
        sms_enabled=False,
        internal_enabled=True,
        reminder_before_hours=24,
        reminder_frequency_hours=1,
    )
    db.add(prefs)
    commit_or_rollback(db, "preferencias de notificacao")
    db.refresh(prefs)
    return prefs


def update_notification_settings(
    db: Session, user: models.User, data: dict
) -> models.UserNotificationSettings:
    prefs = get_notification_settings(db, user)
    for key in ("email_enabled", "whatsapp_enabled", "sms_enabled", "internal_enabled"):
        if data.get(key) is not None:
            setattr(prefs, key, bool(data[key]))
    for key in ("reminder_before_hours", "reminder_frequency_hours"):
        if data.get(key) is not None:
            value = int(data[key])
            if value < 1:
                raise ValidationError("Intervalo de lembrete deve ser de pelo menos 1 hora")
            setattr(prefs, key, value)
    commit_or_rollback(db, "preferencias de notificacao")
    db.refresh(prefs)
    return prefs
