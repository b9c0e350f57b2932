from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import Capabilities, accessible_company_ids, get_capabilities
from gestao_acoes.core.security import get_current_user
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.services import users as user_service
from gestao_acoes.services.directory import linked_responsible_ids

router = APIRouter(tags=["Usuario"])


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


@router.get("/me")
def get_me(
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    return {
        "user": {
            "id": current_user.id,
            "name": current_user.name,
            "email": current_user.email,
            "cpf": current_user.cpf,
            "role": current_user.role,
            "status": current_user.status,
        },
        "permissions": capabilities.as_dict(),
        "scope": {
            "company_ids": accessible_company_ids(current_user),
            "client_ids": list(current_user.client_ids or []),
            "responsible_ids": linked_responsible_ids(db, current_user),
        },
    }


@router.post("/me/password")
def change_my_password(
    payload: PasswordChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user_service.change_password(db, current_user, payload.current_password, payload.new_password)
    return {"success": True}
