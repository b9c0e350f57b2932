"""Provisionamento do administrador master."""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gestao_acoes.core.config import settings
from gestao_acoes.core.security import get_password_hash
from gestao_acoes.db import models
from gestao_acoes.db.init_db import ensure_main_company
from gestao_acoes.services.users import grant_all_permissions, normalize_cpf

logger = logging.getLogger("gestao_acoes.provisioning")


@dataclass
class ProvisioningResult:
    status_code: int
    success: bool
    message: str

    def as_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


def _new_master(db: Session, name: str, cpf: str, email: str, password: str) -> models.User:
    company = ensure_main_company(db)
    user = models.User(
        name=name,
        cpf=cpf,
        email=email,
        password_hash=get_password_hash(password),
        role="master",
        status="active",
        company_ids=[company.id],
        client_ids=[],
    )
    db.add(user)
    db.flush()
    grant_all_permissions(db, user)
    return user


def create_master_user(db: Session, email: str, password: str, name: str, cpf: str) -> ProvisioningResult:
    email = (email or "").strip().lower()
    cpf = normalize_cpf(cpf)
    name = (name or "").strip()
    if not email or not password or not name or not cpf:
        return ProvisioningResult(400, False, "Email, senha, nome e CPF sao obrigatorios")
    try:
        existing = (
            db.query(models.User)
            .filter((models.User.email == email) | (models.User.cpf == cpf))
            .first()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Erro ao verificar usuario master existente")
        return ProvisioningResult(500, False, f"Erro ao verificar se o usuario ja existe: {exc}")
    if existing:
        return ProvisioningResult(400, False, "O usuario master ja existe no sistema")

    try:
        _new_master(db, name, cpf, email, password)
        db.commit()
    except (SQLAlchemyError, ValueError) as exc:
        db.rollback()
        logger.exception("Erro ao criar usuario master")
        return ProvisioningResult(500, False, f"Erro ao criar usuario master: {exc}")
    logger.info("Usuario master criado email=%s", email)
    return ProvisioningResult(200, True, "O usuario master foi criado com sucesso")


def create_admin_user(db: Session) -> ProvisioningResult:
    """Cria ou promove o administrador configurado em MASTER_ADMIN_CPF."""
    cpf = normalize_cpf(settings.MASTER_ADMIN_CPF)
    password = settings.MASTER_ADMIN_PASSWORD
    if not cpf or not password:
        return ProvisioningResult(500, False, "MASTER_ADMIN_CPF e MASTER_ADMIN_PASSWORD nao configurados")
    email = f"{cpf}@exemplo.com"
    try:
        existing = db.query(models.User).filter(models.User.cpf == cpf).first()
        if existing:
            existing.role = "master"
            existing.status = "active"
            grant_all_permissions(db, existing)
            db.commit()
            logger.info("Administrador master existente atualizado cpf=%s", cpf)
            return ProvisioningResult(
                200,
                True,
                "Usuario com este CPF ja existe. Permissoes atualizadas para Administrador Master.",
            )
        _new_master(db, settings.MASTER_ADMIN_NAME, cpf, email, password)
        db.commit()
    except (SQLAlchemyError, ValueError) as exc:
        db.rollback()
        logger.exception("Erro ao criar administrador master")
        return ProvisioningResult(500, False, f"Erro ao criar administrador master: {exc}")
    logger.info("Administrador master criado cpf=%s", cpf)
    return ProvisioningResult(200, True, "Administrador master criado com sucesso")
