import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gestao_acoes.core.security import create_access_token, verify_password
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.services.users import find_by_login

router = APIRouter(tags=["Auth"])
logger = logging.getLogger("gestao_acoes.auth")


class LoginRequest(BaseModel):
    usuario: str
    senha: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    role: str


def _authenticate(db: Session, username: str, password: str) -> models.User:
    user = find_by_login(db, username)
    if not user or not verify_password(password, user.password_hash):
        logger.info("Falha de login para %s", username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario ou senha invalidos"
        )
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario inativo")
    return user


def _token_for(user: models.User) -> dict:
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"access_token": token, "token_type": "bearer", "role": user.role}


@router.post("/auth/login", response_model=LoginResponse, summary="Login JSON (frontend)")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Login por email ou CPF:
    - POST /api/auth/login
    - body: {"usuario": "...", "senha": "..."}
    """
    user = _authenticate(db, payload.usuario, payload.senha)
    return _token_for(user)


@router.post("/auth/token", response_model=LoginResponse, summary="Login OAuth2 (Swagger)")
def login_for_swagger(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    user = _authenticate(db, form_data.username, form_data.password)
    return _token_for(user)
