import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gestao_acoes.core.config import settings
from gestao_acoes.db.session import get_db
from gestao_acoes.services import provisioning

router = APIRouter(tags=["Admin"])
logger = logging.getLogger("gestao_acoes.admin")


class MasterUserRequest(BaseModel):
    email: str
    password: str
    name: str
    cpf: str


def require_admin_token(x_admin_token: Optional[str] = Header(default=None)) -> None:
    expected = settings.ADMIN_PROVISIONING_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Provisionamento desabilitado: ADMIN_PROVISIONING_TOKEN nao configurado",
        )
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        logger.warning("Tentativa de provisionamento com token invalido")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token administrativo invalido")


@router.post("/admin/create-master-user", dependencies=[Depends(require_admin_token)])
def create_master_user(payload: MasterUserRequest, db: Session = Depends(get_db)):
    result = provisioning.create_master_user(
        db, payload.email, payload.password, payload.name, payload.cpf
    )
    return JSONResponse(status_code=result.status_code, content=result.as_dict())


@router.post("/admin/create-admin-user", dependencies=[Depends(require_admin_token)])
def create_admin_user(db: Session = Depends(get_db)):
    result = provisioning.create_admin_user(db)
    return JSONResponse(status_code=result.status_code, content=result.as_dict())
