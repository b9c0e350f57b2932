import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import (
    Capabilities,
    ensure_company_access,
    get_capabilities,
    require_capability,
)
from gestao_acoes.core.security import get_current_user
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.services import actions as action_service
from gestao_acoes.services import directory, lifecycle, notifications
from gestao_acoes.services.actions import ActionSummary
from gestao_acoes.services.directory import linked_responsible_ids

router = APIRouter(tags=["Acoes"])
logger = logging.getLogger("gestao_acoes.actions")


class ActionCreate(BaseModel):
    subject: str = Field(..., min_length=1)
    description: Optional[str] = None
    responsible_id: str
    company_id: Optional[str] = None
    end_date: datetime
    start_date: Optional[datetime] = None
    client_id: Optional[str] = None
    requester_id: Optional[str] = None
    status: Optional[str] = None
    is_personal_reminder: bool = False


class ActionUpdate(BaseModel):
    subject: Optional[str] = None
    description: Optional[str] = None
    responsible_id: Optional[str] = None
    company_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    client_id: Optional[str] = None
    requester_id: Optional[str] = None
    is_personal_reminder: Optional[bool] = None


class StatusChange(BaseModel):
    status: str


class CompletionRequest(BaseModel):
    justification: str


class ReviewRequest(BaseModel):
    comment: Optional[str] = None


class NoteCreate(BaseModel):
    content: str


class NotifyRequest(BaseModel):
    message: str
    recipients: list[str] = Field(default_factory=list)


class NoteResponse(BaseModel):
    id: str
    content: str
    created_by: str
    created_at: datetime
    is_deleted: bool = False

    class Config:
        from_attributes = True


class AttachmentResponse(BaseModel):
    id: str
    file_name: str
    content_type: Optional[str] = None
    size: Optional[int] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ActionResponse(BaseModel):
    id: str
    subject: str
    description: Optional[str] = None
    status: str
    responsible_id: str
    start_date: datetime
    end_date: datetime
    company_id: str
    client_id: Optional[str] = None
    requester_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    is_personal_reminder: bool = False
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActionDetailResponse(ActionResponse):
    notes: list[NoteResponse] = Field(default_factory=list)
    attachments: list[AttachmentResponse] = Field(default_factory=list)


def _load_visible_action(
    db: Session, action_id: str, user: models.User, capabilities: Capabilities
) -> models.Action:
    action = action_service.get_action(db, action_id)
    ensure_company_access(user, action.company_id)
    if capabilities.restricted_to_assigned:
        own = action.responsible_id in linked_responsible_ids(db, user) or action.created_by == user.id
        if not own:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acao nao atribuida ao usuario")
    return lifecycle.refresh_action_overdue(db, action)


def _to_detail(action: models.Action) -> ActionDetailResponse:
    detail = ActionDetailResponse.model_validate(action)
    detail.notes = [NoteResponse.model_validate(note) for note in action.notes if not note.is_deleted]
    return detail


@router.get("/acoes", response_model=list[ActionResponse])
def list_actions(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    responsible_id: Optional[str] = None,
    client_id: Optional[str] = None,
    company_id: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    return action_service.list_actions(
        db,
        current_user,
        capabilities,
        status=status_filter,
        responsible_id=responsible_id,
        client_id=client_id,
        company_id=company_id,
    )


@router.get("/acoes/kanban")
def kanban(
    responsible_id: Optional[str] = None,
    client_id: Optional[str] = None,
    company_id: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    items = action_service.list_actions(
        db,
        current_user,
        capabilities,
        responsible_id=responsible_id,
        client_id=client_id,
        company_id=company_id,
    )
    columns = action_service.group_by_status(items)
    return {
        "columns": [
            {
                "status": column_status,
                "label": lifecycle.STATUS_LABELS.get(column_status, column_status),
                "items": [ActionResponse.model_validate(action).model_dump() for action in column_items],
            }
            for column_status, column_items in columns.items()
        ]
    }


@router.get("/acoes/calendario", response_model=list[ActionResponse])
def calendar(
    start: datetime,
    end: datetime,
    company_id: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    start, end = action_service.to_naive_utc(start), action_service.to_naive_utc(end)
    if end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Periodo invalido")
    return action_service.list_actions(
        db, current_user, capabilities, company_id=company_id, start=start, end=end
    )


@router.get("/acoes/resumo", response_model=ActionSummary)
def summary(
    company_id: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    items = action_service.list_actions(db, current_user, capabilities, company_id=company_id)
    return action_service.get_summary(items)


@router.get("/acoes/lembretes", response_model=list[ActionResponse])
def reminders(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return action_service.due_reminders(db, current_user)


@router.get("/acoes/{action_id}", response_model=ActionDetailResponse)
def get_action(
    action_id: str,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    action = _load_visible_action(db, action_id, current_user, capabilities)
    lifecycle.mark_viewed(db, action, current_user)
    return _to_detail(action)


@router.post("/acoes", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
def create_action(
    payload: ActionCreate,
    current_user: models.User = Depends(require_capability("can_create")),
    db: Session = Depends(get_db),
):
    data = payload.model_dump()
    if data.get("company_id"):
        ensure_company_access(current_user, data["company_id"])
    data["company_id"] = directory.resolve_company_selection(db, current_user, data.get("company_id"))
    return action_service.create_action(db, data, current_user)


@router.put("/acoes/{action_id}", response_model=ActionResponse)
def update_action(
    action_id: str,
    payload: ActionUpdate,
    current_user: models.User = Depends(require_capability("can_edit_action")),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    _load_visible_action(db, action_id, current_user, capabilities)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("company_id"):
        ensure_company_access(current_user, changes["company_id"])
    return action_service.update_action(db, action_id, changes)


@router.delete("/acoes/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_action(
    action_id: str,
    current_user: models.User = Depends(require_capability("can_delete")),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    _load_visible_action(db, action_id, current_user, capabilities)
    action_service.delete_action(db, action_id)


@router.patch("/acoes/{action_id}/status", response_model=ActionResponse)
def change_status(
    action_id: str,
    payload: StatusChange,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    action = _load_visible_action(db, action_id, current_user, capabilities)
    return lifecycle.set_status(db, action, payload.status, capabilities)


@router.post("/acoes/{action_id}/concluir", response_model=ActionDetailResponse)
def complete_action(
    action_id: str,
    payload: CompletionRequest,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    action = _load_visible_action(db, action_id, current_user, capabilities)
    action = lifecycle.complete_action(db, action, payload.justification, current_user)
    return _to_detail(action)


@router.post("/acoes/{action_id}/aprovar", response_model=ActionDetailResponse)
def approve_action(
    action_id: str,
    payload: ReviewRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = action_service.get_action(db, action_id)
    action = lifecycle.approve_action(db, action, current_user, payload.comment)
    return _to_detail(action)


@router.post("/acoes/{action_id}/reprovar", response_model=ActionDetailResponse)
def reject_action(
    action_id: str,
    payload: ReviewRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    action = action_service.get_action(db, action_id)
    action = lifecycle.reject_action(db, action, payload.comment, current_user)
    return _to_detail(action)


@router.post("/acoes/{action_id}/notas", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
def add_note(
    action_id: str,
    payload: NoteCreate,
    current_user: models.User = Depends(require_capability("can_add_notes")),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    _load_visible_action(db, action_id, current_user, capabilities)
    return action_service.add_note(db, action_id, payload.content, current_user)


@router.delete("/acoes/{action_id}/notas/{note_id}", response_model=NoteResponse)
def delete_note(
    action_id: str,
    note_id: str,
    current_user: models.User = Depends(require_capability("can_add_notes")),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    _load_visible_action(db, action_id, current_user, capabilities)
    return action_service.delete_note(db, action_id, note_id)


@router.post(
    "/acoes/{action_id}/anexos",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_attachment(
    action_id: str,
    file: UploadFile,
    current_user: models.User = Depends(require_capability("can_edit_action")),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    _load_visible_action(db, action_id, current_user, capabilities)
    return action_service.add_attachment(
        db, action_id, file.file, file.filename, file.content_type, current_user
    )


@router.get("/acoes/{action_id}/anexos/{attachment_id}/url")
def attachment_url(
    action_id: str,
    attachment_id: str,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    action = _load_visible_action(db, action_id, current_user, capabilities)
    attachment = next((item for item in action.attachments if item.id == attachment_id), None)
    if not attachment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Anexo nao encontrado")
    return {"url": action_service.attachment_url(attachment)}


@router.post("/acoes/{action_id}/notificar")
def notify(
    action_id: str,
    payload: NotifyRequest,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    action = _load_visible_action(db, action_id, current_user, capabilities)
    result = notifications.notify_action(
        db, action, current_user.id, payload.message, payload.recipients
    )
    if not result.success:
        logger.warning("Nenhum destinatario notificado para acao %s", action_id)
    return {"success": result.success, "recipients": result.recipients, "failed": result.failed}
