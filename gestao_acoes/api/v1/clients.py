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

router = APIRouter(tags=["Clientes"])


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    company_id: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    company_id: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None


class ClientResponse(BaseModel):
    id: str
    name: str
    company_id: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/clientes", response_model=list[ClientResponse])
def list_clients(
    company_id: Optional[str] = Query(default="all"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Lista clientes; ``company_id=all`` devolve todos os acessiveis."""
    clients = directory.filter_clients_by_company(directory.list_clients(db), company_id)
    allowed = accessible_company_ids(current_user)
    if allowed is None:
        return clients
    return [client for client in clients if client.company_id in allowed]


@router.get("/clientes/{client_id}", response_model=ClientResponse)
def get_client(
    client_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = directory.get_client(db, client_id)
    ensure_company_access(current_user, client.company_id)
    return client


@router.post("/clientes", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(
    payload: ClientCreate,
    current_user: models.User = Depends(require_capability("can_edit_client")),
    db: Session = Depends(get_db),
):
    data = payload.model_dump()
    if data.get("company_id"):
        ensure_company_access(current_user, data["company_id"])
    data["company_id"] = directory.resolve_company_selection(db, current_user, data.get("company_id"))
    return directory.create_client(db, data)


@router.put("/clientes/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: str,
    payload: ClientUpdate,
    current_user: models.User = Depends(require_capability("can_edit_client")),
    db: Session = Depends(get_db),
):
    client = directory.get_client(db, client_id)
    ensure_company_access(current_user, client.company_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("company_id"):
        ensure_company_access(current_user, data["company_id"])
    return directory.update_client(db, client_id, data)


@router.delete("/clientes/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: str,
    current_user: models.User = Depends(require_capability("can_delete_client")),
    db: Session = Depends(get_db),
):
    client = directory.get_client(db, client_id)
    ensure_company_access(current_user, client.company_id)
    directory.delete_client(db, client_id)
