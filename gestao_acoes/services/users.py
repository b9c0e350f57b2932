import logging
import re
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import CAPABILITY_FLAGS, Capabilities
from gestao_acoes.core.errors import NotFoundError, ValidationError
from gestao_acoes.core.security import get_password_hash, verify_password
from gestao_acoes.db import models
from gestao_acoes.db.session import commit_or_rollback
from gestao_acoes.services.directory import clean_text

logger = logging.getLogger("gestao_acoes.users")

USER_ROLES = {"user", "master"}


def normalize_cpf(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def find_by_login(db: Session, login: str) -> models.User | None:
    """Localiza o usuario pelo email ou pelo CPF (com ou sem mascara)."""
    normalized = (login or "").strip().lower()
    if not normalized:
        return None
    user = db.query(models.User).filter(func.lower(models.User.email) == normalized).first()
    if user:
        return user
    cpf = normalize_cpf(normalized)
    if not cpf:
        return None
    return db.query(models.User).filter(models.User.cpf == cpf).first()


def get_user(db: Session, user_id: str) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("Usuario nao encontrado")
    return user


def list_users(db: Session) -> list[models.User]:
    return db.query(models.User).order_by(models.User.name.asc()).all()


def set_permissions(db: Session, user: models.User, flags: dict[str, bool]) -> models.UserPermission:
    row = user.permissions
    if row is None:
        row = models.UserPermission(user_id=user.id)
        user.permissions = row
    for flag in CAPABILITY_FLAGS:
        if flag in flags and flags[flag] is not None:
            setattr(row, flag, bool(flags[flag]))
    return row


def grant_all_permissions(db: Session, user: models.User) -> models.UserPermission:
    return set_permissions(db, user, Capabilities.full().as_dict())


def _validate_companies(db: Session, company_ids: Optional[list[str]]) -> list[str]:
    company_ids = [cid for cid in (company_ids or []) if cid]
    if not company_ids:
        return []
    found = {cid for (cid,) in db.query(models.Company.id).filter(models.Company.id.in_(company_ids))}
    missing = [cid for cid in company_ids if cid not in found]
    if missing:
        raise ValidationError("Empresas informadas nao existem: " + ", ".join(missing))
    return company_ids


def _ensure_unique(db: Session, email: str, cpf: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(models.User).filter(
        (func.lower(models.User.email) == email.lower()) | (models.User.cpf == cpf)
    )
    if exclude_id:
        query = query.filter(models.User.id != exclude_id)
    if query.first():
        raise ValidationError("Ja existe um usuario com este email ou CPF")


def create_user(db: Session, data: dict) -> models.User:
    name = clean_text(data.get("name"))
    email = (clean_text(data.get("email")) or "").lower()
    cpf = normalize_cpf(data.get("cpf"))
    password = data.get("password") or ""
    role = data.get("role") or "user"
    if not name or not email or not cpf:
        raise ValidationError("Nome, email e CPF sao obrigatorios")
    if len(password) < 6:
        raise ValidationError("A senha deve ter pelo menos 6 caracteres")
    if role not in USER_ROLES:
        raise ValidationError("Perfil de usuario invalido")
    _ensure_unique(db, email, cpf)

    user = models.User(
        name=name,
        email=email,
        cpf=cpf,
        password_hash=get_password_hash(password),
        role=role,
        status="active",
        company_ids=_validate_companies(db, data.get("company_ids")),
        client_ids=[cid for cid in (data.get("client_ids") or []) if cid],
    )
    db.add(user)
    db.flush()
    if role == "master":
        grant_all_permissions(db, user)
    else:
        set_permissions(db, user, data.get("permissions") or {})
    _link_responsible(db, user, data.get("responsible_id"))
    commit_or_rollback(db, "usuario")
    db.refresh(user)
    logger.info("Usuario criado id=%s perfil=%s", user.id, user.role)
    return user


def _link_responsible(db: Session, user: models.User, responsible_id: Optional[str]) -> None:
    if not responsible_id:
        return
    responsible = (
        db.query(models.Responsible).filter(models.Responsible.id == responsible_id).first()
    )
    if not responsible:
        raise ValidationError("Responsavel informado nao existe")
    responsible.user_id = user.id
    responsible.is_system_user = True
    user.responsible_id = responsible.id


def update_user(db: Session, user_id: str, data: dict) -> models.User:
    user = get_user(db, user_id)
    if data.get("name") is not None:
        name = clean_text(data["name"])
        if not name:
            raise ValidationError("Nome e obrigatorio")
        user.name = name
    email = (clean_text(data.get("email")) or "").lower() or user.email
    cpf = normalize_cpf(data.get("cpf")) or user.cpf
    if email != user.email or cpf != user.cpf:
        _ensure_unique(db, email, cpf, exclude_id=user.id)
        user.email = email
        user.cpf = cpf
    if data.get("password"):
        if len(data["password"]) < 6:
            raise ValidationError("A senha deve ter pelo menos 6 caracteres")
        user.password_hash = get_password_hash(data["password"])
    if data.get("role") is not None:
        if data["role"] not in USER_ROLES:
            raise ValidationError("Perfil de usuario invalido")
        user.role = data["role"]
    if data.get("status") is not None:
        if data["status"] not in {"active", "inactive"}:
            raise ValidationError("Status de usuario invalido")
        user.status = data["status"]
    if data.get("company_ids") is not None:
        user.company_ids = _validate_companies(db, data["company_ids"])
    if data.get("client_ids") is not None:
        user.client_ids = [cid for cid in data["client_ids"] if cid]
    if user.role == "master":
        grant_all_permissions(db, user)
    elif data.get("permissions") is not None:
        set_permissions(db, user, data["permissions"])
    _link_responsible(db, user, data.get("responsible_id"))
    commit_or_rollback(db, "usuario")
    db.refresh(user)
    return user


def change_password(db: Session, user: models.User, current: str, new: str) -> None:
    if not verify_password(current or "", user.password_hash):
        raise ValidationError("Senha atual incorreta")
    if not new or len(new) < 6:
        raise ValidationError("A nova senha deve ter pelo menos 6 caracteres")
    user.password_hash = get_password_hash(new)
    commit_or_rollback(db, "senha")


def delete_user(db: Session, user_id: str, current_user: models.User) -> None:
    user = get_user(db, user_id)
    if user.id == current_user.id:
        raise ValidationError("Nao e possivel excluir o proprio usuario")
    linked = db.query(models.Responsible).filter(models.Responsible.user_id == user.id).all()
    for responsible in linked:
        responsible.user_id = None
        responsible.is_system_user = False
    db.delete(user)
    commit_or_rollback(db, "usuario")
    logger.info("Usuario excluido id=%s", user_id)
