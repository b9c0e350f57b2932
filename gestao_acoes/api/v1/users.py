import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import Capabilities, require_capability
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.services import users as user_service

router = APIRouter(tags=["Usuarios"])
logger = logging.getLogger("gestao_acoes.users")


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    cpf: str
    password: str = Field(..., min_length=6)
    role: str = "user"
    company_ids: list[str] = Field(default_factory=list)
    client_ids: list[str] = Field(default_factory=list)
    responsible_id: Optional[str] = None
    permissions: dict[str, bool] = Field(default_factory=dict)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    cpf: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    company_ids: Optional[list[str]] = None
    client_ids: Optional[list[str]] = None
    responsible_id: Optional[str] = None
    permissions: Optional[dict[str, bool]] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    cpf: str
    role: str
    status: str
    company_ids: list[str] = Field(default_factory=list)
    client_ids: list[str] = Field(default_factory=list)
    responsible_id: Optional[str] = None
    permissions: dict[str, bool] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


def _serialize_user(user: models.User) -> UserResponse:
    capabilities = Capabilities.full() if user.role == "master" else Capabilities.from_row(user.permissions)
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        cpf=user.cpf,
        role=user.role,
        status=user.status,
        company_ids=list(user.company_ids or []),
        client_ids=list(user.client_ids or []),
        responsible_id=user.responsible_id,
        permissions=capabilities.as_dict(),
        created_at=user.created_at,
    )


@router.get("/users", response_model=list[UserResponse])
def list_users(
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    return [_serialize_user(user) for user in user_service.list_users(db)]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    return _serialize_user(user_service.get_user(db, user_id))


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    user = user_service.create_user(db, payload.model_dump())
    logger.info("Usuario %s criado por %s", user.id, current_user.id)
    return _serialize_user(user)


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    payload: UserUpdate,
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    user = user_service.update_user(db, user_id, payload.model_dump(exclude_unset=True))
    return _serialize_user(user)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    current_user: models.User = Depends(require_capability("can_edit_user")),
    db: Session = Depends(get_db),
):
    user_service.delete_user(db, user_id, current_user)
