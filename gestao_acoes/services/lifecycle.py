"""Ciclo de status das acoes.

Existem dois caminhos ate ``concluido``: a alteracao manual (dropdown e
kanban), controlada pelas permissoes do usuario, e o fluxo de conclusao,
que passa por ``aguardando_aprovacao`` e depende da aprovacao do solicitante.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import Capabilities
from gestao_acoes.core.errors import PermissionDeniedError, ValidationError
from gestao_acoes.db import models
from gestao_acoes.db.session import commit_or_rollback
from gestao_acoes.services import notifications
from gestao_acoes.services.directory import linked_responsible_ids

logger = logging.getLogger("gestao_acoes.lifecycle")

NAO_VISUALIZADA = "nao_visualizada"
NAO_INICIADA = "nao_iniciada"
PENDENTE = "pendente"
ATRASADO = "atrasado"
AGUARDANDO_APROVACAO = "aguardando_aprovacao"
CONCLUIDO = "concluido"

STATUSES = (NAO_VISUALIZADA, NAO_INICIADA, PENDENTE, ATRASADO, AGUARDANDO_APROVACAO, CONCLUIDO)
TERMINAL_STATUSES = frozenset({CONCLUIDO})
OPEN_STATUSES = frozenset({NAO_VISUALIZADA, NAO_INICIADA, PENDENTE})
MANUAL_STATUSES = frozenset({NAO_INICIADA, PENDENTE, ATRASADO, CONCLUIDO})

STATUS_LABELS = {
    NAO_VISUALIZADA: "Não visualizada",
    NAO_INICIADA: "Não iniciada",
    PENDENTE: "Pendente",
    ATRASADO: "Atrasado",
    AGUARDANDO_APROVACAO: "Aguardando aprovação",
    CONCLUIDO: "Concluído",
}

COMPLETION_PREFIX = "[CONCLUSÃO]"
APPROVAL_PREFIX = "[APROVAÇÃO]"
REJECTION_PREFIX = "[REPROVAÇÃO]"


def append_note(action: models.Action, content: str, author_id: Optional[str]) -> models.ActionNote:
    note = models.ActionNote(
        action_id=action.id,
        content=content,
        created_by=author_id or "system",
        created_at=datetime.utcnow(),
        is_deleted=False,
    )
    action.notes.append(note)
    return note


def _touch(action: models.Action) -> None:
    action.updated_at = datetime.utcnow()


def is_overdue(action: models.Action, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return action.status in OPEN_STATUSES and action.end_date is not None and action.end_date < now


def refresh_overdue(db: Session, now: Optional[datetime] = None) -> int:
    """Marca como atrasadas as acoes abertas com prazo vencido."""
    now = now or datetime.utcnow()
    changed = (
        db.query(models.Action)
        .filter(models.Action.status.in_(OPEN_STATUSES), models.Action.end_date < now)
        .update({"status": ATRASADO, "updated_at": now}, synchronize_session=False)
    )
    if changed:
        commit_or_rollback(db, "status das acoes atrasadas")
        logger.info("%s acoes marcadas como atrasadas", changed)
    return changed


def refresh_action_overdue(
    db: Session, action: models.Action, now: Optional[datetime] = None
) -> models.Action:
    now = now or datetime.utcnow()
    if not is_overdue(action, now):
        return action
    action.status = ATRASADO
    action.updated_at = now
    commit_or_rollback(db, "status da acao")
    db.refresh(action)
    logger.info("Acao %s marcada como atrasada", action.id)
    return action


def mark_viewed(db: Session, action: models.Action, user: models.User) -> models.Action:
    if action.status != NAO_VISUALIZADA:
        return action
    if action.responsible_id not in linked_responsible_ids(db, user):
        return action
    action.status = NAO_INICIADA
    _touch(action)
    commit_or_rollback(db, "acao")
    db.refresh(action)
    return action


def set_status(
    db: Session,
    action: models.Action,
    status: str,
    capabilities: Capabilities,
) -> models.Action:
    """Alteracao manual de status (dropdown ou kanban)."""
    if status not in STATUSES:
        raise ValidationError(f"Status invalido: {status}")
    if status not in MANUAL_STATUSES:
        raise ValidationError("Use o fluxo de conclusao para enviar a acao para aprovacao")
    if status == CONCLUIDO and not capabilities.can_mark_complete:
        raise PermissionDeniedError("Usuario sem permissao para concluir acoes")
    if status == ATRASADO and not capabilities.can_mark_delayed:
        raise PermissionDeniedError("Usuario sem permissao para marcar acoes como atrasadas")
    if status == action.status:
        return action

    previous = action.status
    action.status = status
    if status == CONCLUIDO:
        action.completed_at = datetime.utcnow()
    else:
        action.completed_at = None
    _touch(action)
    commit_or_rollback(db, "status da acao")
    db.refresh(action)
    logger.info("Acao %s: status %s -> %s (manual)", action.id, previous, status)
    return action


def complete_action(
    db: Session,
    action: models.Action,
    justification: Optional[str],
    user: models.User,
) -> models.Action:
    """Conclui a acao e a envia para aprovacao do solicitante."""
    if action.status in TERMINAL_STATUSES:
        raise ValidationError("Acao ja concluida")
    if action.status == AGUARDANDO_APROVACAO:
        raise ValidationError("Acao ja esta aguardando aprovacao")
    text = (justification or "").strip()
    if not text:
        raise ValidationError("Informe a justificativa de conclusao")
    if not action.requester_id:
        raise ValidationError("Acao sem solicitante: nao e possivel enviar para aprovacao")

    action.status = AGUARDANDO_APROVACAO
    action.completion_notes = text
    append_note(action, f"{COMPLETION_PREFIX} {text}", user.id)
    _touch(action)
    commit_or_rollback(db, "conclusao da acao")
    db.refresh(action)
    logger.info("Acao %s enviada para aprovacao de %s", action.id, action.requester_id)

    if not notifications.send_approval_notification(db, action.requester_id, user.id, action):
        logger.warning("Notificacao de aprovacao nao enviada para acao %s", action.id)
    return action


def _ensure_can_review(db: Session, action: models.Action, user: models.User) -> None:
    if action.status != AGUARDANDO_APROVACAO:
        raise ValidationError("Acao nao esta aguardando aprovacao")
    if user.role == "master":
        return
    if action.requester_id not in linked_responsible_ids(db, user):
        raise PermissionDeniedError("Somente o solicitante pode aprovar ou reprovar a acao")


def approve_action(
    db: Session, action: models.Action, user: models.User, comment: Optional[str] = None
) -> models.Action:
    _ensure_can_review(db, action, user)
    now = datetime.utcnow()
    action.status = CONCLUIDO
    action.completed_at = now
    text = (comment or "").strip() or "Conclusão aprovada pelo solicitante."
    append_note(action, f"{APPROVAL_PREFIX} {text}", user.id)
    _touch(action)
    commit_or_rollback(db, "aprovacao da acao")
    db.refresh(action)
    logger.info("Acao %s aprovada por %s", action.id, user.id)
    notifications.send_internal_notification(
        db,
        action.responsible_id,
        user.id,
        f"Ação aprovada: {action.subject}",
        f'A conclusão da ação "{action.subject}" foi aprovada.',
        action.id,
        notifications.ACTION_REFERENCE_TYPE,
    )
    return action


def reject_action(
    db: Session, action: models.Action, reason: Optional[str], user: models.User
) -> models.Action:
    _ensure_can_review(db, action, user)
    text = (reason or "").strip()
    if not text:
        raise ValidationError("Informe o motivo da reprovacao")
    action.status = PENDENTE
    action.completed_at = None
    append_note(action, f"{REJECTION_PREFIX} {text}", user.id)
    _touch(action)
    commit_or_rollback(db, "reprovacao da acao")
    db.refresh(action)
    logger.info("Acao %s reprovada por %s", action.id, user.id)
    notifications.send_internal_notification(
        db,
        action.responsible_id,
        user.id,
        f"Ação reprovada: {action.subject}",
        f'A conclusão da ação "{action.subject}" foi reprovada: {text}',
        action.id,
        notifications.ACTION_REFERENCE_TYPE,
    )
    return action
