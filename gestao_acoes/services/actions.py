import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import BinaryIO, Iterable, Optional

from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import Capabilities, accessible_company_ids
from gestao_acoes.core.config import settings
from gestao_acoes.core.errors import NotFoundError, ValidationError
from gestao_acoes.db import models
from gestao_acoes.db.session import commit_or_rollback
from gestao_acoes.services import lifecycle, notifications
from gestao_acoes.services.directory import clean_text, linked_responsible_ids
from gestao_acoes.services.storage import StorageClient, StorageError

logger = logging.getLogger("gestao_acoes.actions")

INITIAL_STATUSES = {lifecycle.PENDENTE, lifecycle.NAO_INICIADA, lifecycle.NAO_VISUALIZADA}
REQUIRED_FIELDS = ("subject", "responsible_id", "company_id", "end_date")
OPTIONAL_REFERENCES = ("client_id", "requester_id")
UPDATABLE_FIELDS = (
    "subject",
    "description",
    "responsible_id",
    "start_date",
    "end_date",
    "company_id",
    "client_id",
    "requester_id",
    "is_personal_reminder",
)


class ActionSummary(BaseModel):
    completed: int
    pending: int
    delayed: int
    awaiting_approval: int
    total: int
    completion_rate: int


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Datas com fuso (ex.: ``...Z`` do navegador) viram UTC sem tzinfo, como no banco."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def completion_rate(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(math.floor(100 * completed / total + 0.5))


def get_summary(actions: Iterable[models.Action]) -> ActionSummary:
    statuses = [action.status for action in actions]
    completed = statuses.count(lifecycle.CONCLUIDO)
    total = len(statuses)
    return ActionSummary(
        completed=completed,
        pending=statuses.count(lifecycle.PENDENTE),
        delayed=statuses.count(lifecycle.ATRASADO),
        awaiting_approval=statuses.count(lifecycle.AGUARDANDO_APROVACAO),
        total=total,
        completion_rate=completion_rate(completed, total),
    )


def group_by_status(actions: Iterable[models.Action]) -> dict[str, list[models.Action]]:
    columns: dict[str, list[models.Action]] = {status: [] for status in lifecycle.STATUSES}
    for action in actions:
        columns.setdefault(action.status, []).append(action)
    return columns


def list_actions(
    db: Session,
    user: models.User,
    capabilities: Capabilities,
    status: Optional[str] = None,
    responsible_id: Optional[str] = None,
    client_id: Optional[str] = None,
    company_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> list[models.Action]:
    lifecycle.refresh_overdue(db, now)
    start, end = to_naive_utc(start), to_naive_utc(end)
    query = db.query(models.Action)

    allowed_companies = accessible_company_ids(user)
    if allowed_companies is not None:
        query = query.filter(models.Action.company_id.in_(allowed_companies))
    if capabilities.restricted_to_assigned:
        query = query.filter(
            or_(
                models.Action.responsible_id.in_(linked_responsible_ids(db, user)),
                models.Action.created_by == user.id,
            )
        )

    if status and status != "all":
        query = query.filter(models.Action.status == status)
    if responsible_id and responsible_id != "all":
        query = query.filter(models.Action.responsible_id == responsible_id)
    if client_id and client_id != "all":
        query = query.filter(models.Action.client_id == client_id)
    if company_id and company_id != "all":
        query = query.filter(models.Action.company_id == company_id)
    if start is not None:
        query = query.filter(models.Action.end_date >= start)
    if end is not None:
        query = query.filter(models.Action.start_date <= end)
    return query.order_by(models.Action.end_date.asc(), models.Action.created_at.asc()).all()


def get_action(db: Session, action_id: str) -> models.Action:
    action = db.query(models.Action).filter(models.Action.id == action_id).first()
    if not action:
        raise NotFoundError("Acao nao encontrada")
    return action


def _exists(db: Session, model, record_id: str) -> bool:
    return db.query(model.id).filter(model.id == record_id).first() is not None


def _validate_references(db: Session, values: dict) -> None:
    if "company_id" in values and not _exists(db, models.Company, values["company_id"]):
        raise ValidationError("Empresa informada nao existe")
    if "responsible_id" in values and not _exists(db, models.Responsible, values["responsible_id"]):
        raise ValidationError("Responsavel informado nao existe")
    if values.get("client_id") and not _exists(db, models.Client, values["client_id"]):
        raise ValidationError("Cliente informado nao existe")
    if values.get("requester_id") and not _exists(db, models.Responsible, values["requester_id"]):
        raise ValidationError("Solicitante informado nao existe")


def _validate_dates(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("A data de termino deve ser posterior a data de inicio")


def create_action(db: Session, data: dict, user: models.User) -> models.Action:
    values = {key: clean_text(data.get(key)) for key in (*REQUIRED_FIELDS, *OPTIONAL_REFERENCES)}
    missing = [key for key in REQUIRED_FIELDS if not values.get(key)]
    if missing:
        raise ValidationError("Campos obrigatorios ausentes: " + ", ".join(missing))
    status = data.get("status") or lifecycle.PENDENTE
    if status not in INITIAL_STATUSES:
        raise ValidationError(f"Status inicial invalido: {status}")
    values["end_date"] = to_naive_utc(values["end_date"])
    start_date = to_naive_utc(data.get("start_date")) or datetime.utcnow()
    _validate_dates(start_date, values["end_date"])
    _validate_references(db, values)

    now = datetime.utcnow()
    action = models.Action(
        id=str(uuid.uuid4()),
        subject=values["subject"],
        description=clean_text(data.get("description")) or "",
        status=status,
        responsible_id=values["responsible_id"],
        start_date=start_date,
        end_date=values["end_date"],
        company_id=values["company_id"],
        client_id=values.get("client_id"),
        requester_id=values.get("requester_id"),
        is_personal_reminder=bool(data.get("is_personal_reminder")),
        created_by=user.id,
        created_by_name=user.name,
        created_at=now,
        updated_at=now,
    )
    db.add(action)
    commit_or_rollback(db, "acao")
    db.refresh(action)
    logger.info("Acao criada id=%s responsavel=%s", action.id, action.responsible_id)
    return action


def update_action(db: Session, action_id: str, patch: dict) -> models.Action:
    action = get_action(db, action_id)
    if "status" in patch:
        raise ValidationError("Status deve ser alterado pela rotina de status")
    changes = {key: clean_text(value) for key, value in patch.items() if key in UPDATABLE_FIELDS}
    for key in (*REQUIRED_FIELDS, "start_date"):
        if key in changes and not changes[key]:
            raise ValidationError(f"Campo obrigatorio: {key}")
    for key in ("start_date", "end_date"):
        if key in changes:
            changes[key] = to_naive_utc(changes[key])
    _validate_dates(
        changes.get("start_date", action.start_date), changes.get("end_date", action.end_date)
    )
    _validate_references(db, {key: value for key, value in changes.items() if value is not None})

    for key, value in changes.items():
        if key == "is_personal_reminder":
            value = bool(value)
        elif key == "description":
            value = value or ""
        setattr(action, key, value)
    action.updated_at = datetime.utcnow()
    commit_or_rollback(db, "acao")
    db.refresh(action)
    return action


def delete_action(db: Session, action_id: str, storage: Optional[StorageClient] = None) -> None:
    action = get_action(db, action_id)
    paths = [attachment.file_path for attachment in action.attachments]
    db.delete(action)
    commit_or_rollback(db, "acao")
    logger.info("Acao excluida id=%s", action_id)
    if not paths:
        return
    storage = storage or StorageClient()
    for path in paths:
        try:
            storage.delete(path)
        except Exception as exc:
            logger.warning("Anexo %s nao removido do storage: %s", path, exc)


def add_note(db: Session, action_id: str, content: Optional[str], user: models.User) -> models.ActionNote:
    action = get_action(db, action_id)
    text = (content or "").strip()
    if not text:
        raise ValidationError("A nota nao pode ser vazia")
    note = lifecycle.append_note(action, text, user.id)
    action.updated_at = datetime.utcnow()
    commit_or_rollback(db, "nota")
    db.refresh(note)
    return note


def delete_note(db: Session, action_id: str, note_id: str) -> models.ActionNote:
    get_action(db, action_id)
    note = (
        db.query(models.ActionNote)
        .filter(models.ActionNote.id == note_id, models.ActionNote.action_id == action_id)
        .first()
    )
    if not note:
        raise NotFoundError("Nota nao encontrada")
    note.is_deleted = True
    commit_or_rollback(db, "nota")
    db.refresh(note)
    return note


def add_attachment(
    db: Session,
    action_id: str,
    file_obj: BinaryIO,
    filename: Optional[str],
    content_type: Optional[str],
    user: models.User,
    storage: Optional[StorageClient] = None,
) -> models.ActionAttachment:
    action = get_action(db, action_id)
    name = (filename or "arquivo").replace(" ", "_").replace("/", "_")
    dest_path = f"attachments/{action.id}/{uuid.uuid4().hex}_{name}"
    storage = storage or StorageClient()
    try:
        file_url, size = storage.upload_file(
            file_obj,
            dest_path,
            content_type or "application/octet-stream",
            max_bytes=settings.MAX_ATTACHMENT_BYTES,
        )
    except StorageError as exc:
        raise ValidationError(str(exc)) from exc
    attachment = models.ActionAttachment(
        action_id=action.id,
        file_path=file_url,
        file_name=filename or name,
        content_type=content_type,
        size=size,
        created_by=user.id,
    )
    db.add(attachment)
    action.updated_at = datetime.utcnow()
    commit_or_rollback(db, "anexo")
    db.refresh(attachment)
    logger.info("Anexo adicionado acao=%s arquivo=%s", action.id, attachment.file_name)
    return attachment


def attachment_url(attachment: models.ActionAttachment, storage: Optional[StorageClient] = None) -> str:
    if attachment.file_path.startswith(("http://", "https://")):
        return attachment.file_path
    storage = storage or StorageClient()
    return storage.generate_signed_url(attachment.file_path)


def due_reminders(db: Session, user: models.User, now: Optional[datetime] = None) -> list[models.Action]:
    """Acoes do usuario que vencem dentro da antecedencia configurada."""
    now = now or datetime.utcnow()
    prefs = notifications.get_notification_settings(db, user)
    window_end = now + timedelta(hours=prefs.reminder_before_hours)
    return (
        db.query(models.Action)
        .filter(
            models.Action.status.in_(lifecycle.OPEN_STATUSES),
            models.Action.end_date >= now,
            models.Action.end_date <= window_end,
            or_(
                models.Action.responsible_id.in_(linked_responsible_ids(db, user)),
                (models.Action.created_by == user.id) & models.Action.is_personal_reminder.is_(True),
            ),
        )
        .order_by(models.Action.end_date.asc())
        .all()
    )
