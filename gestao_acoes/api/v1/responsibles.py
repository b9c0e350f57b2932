from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import (
    accessible_company_ids,
    ensure_company_access,
    require_capability,
)
from gestao_acoes.core.security import get_current_user
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.services import directory

router = APIRouter(tags=["Responsaveis"])


class ResponsibleCreate(BaseModel):
    name: str = Field(..., min_length=1)
    company_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    type: str = "responsible"
    user_id: Optional[str] = None
    client_ids: list[str] = Field(default_factory=list)


class ResponsibleUpdate(BaseModel):
    name: Optional[str] = None
    company_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    type: Optional[str] = None
    client_ids: Optional[list[str]] = None


class ResponsibleResponse(BaseModel):
    id: str
    name: str
    company_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    type: str
    user_id: Optional[str] = None
    client_ids: Optional[list[str]] = None
    is_system_user: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/responsaveis", response_model=list[ResponsibleResponse])
def list_responsibles(
    type: Optional[str] = Query(default=None, description="responsible ou requester"),
    company_id: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = directory.list_responsibles(db, responsible_type=type, company_id=company_id)
    allowed = accessible_company_ids(current_user)
    if allowed is None:
        return items
    return [item for item in items if item.company_id in allowed]


@router.get("/solicitantes", response_model=list[ResponsibleResponse])
def list_requesters(
    company_id: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_responsibles(type="requester", company_id=company_id, current_user=current_user, db=db)


@router.get("/empresas/{company_id}/responsaveis", response_model=list[ResponsibleResponse])
def list_company_responsibles(
    company_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_company_access(current_user, company_id)
    return directory.get_responsibles_by_company(db, company_id)


@router.post("/responsaveis", response_model=ResponsibleResponse, status_code=status.HTTP_201_CREATED)
def create_responsible(
    payload: ResponsibleCreate,
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    data = payload.model_dump()
    if data.get("company_id"):
        ensure_company_access(current_user, data["company_id"])
    data["company_id"] = directory.resolve_company_selection(db, current_user, data.get("company_id"))
    return directory.add_responsible(db, data)


@router.put("/responsaveis/{responsible_id}", response_model=ResponsibleResponse)
def update_responsible(
    responsible_id: str,
    payload: ResponsibleUpdate,
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    responsible = directory.get_responsible(db, responsible_id)
    ensure_company_access(current_user, responsible.company_id)
    return directory.update_responsible(db, responsible_id, payload.model_dump(exclude_unset=True))


@router.delete("/responsaveis/{responsible_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_responsible(
    responsible_id: str,
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    responsible = directory.get_responsible(db, responsible_id)
    ensure_company_access(current_user, responsible.company_id)
    directory.delete_responsible(db, responsible_id)
