from dataclasses import dataclass, fields

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from gestao_acoes.core.security import get_current_user
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db

CAPABILITY_FLAGS = (
    "can_create",
    "can_edit",
    "can_delete",
    "can_mark_complete",
    "can_mark_delayed",
    "can_add_notes",
    "can_view_reports",
    "view_all_actions",
    "can_edit_user",
    "can_edit_action",
    "can_edit_client",
    "can_delete_client",
    "can_edit_company",
    "can_delete_company",
    "view_only_assigned_actions",
)


@dataclass(frozen=True)
class Capabilities:
    """Conjunto de permissoes do usuario, avaliado uma vez por requisicao."""

    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_mark_complete: bool = False
    can_mark_delayed: bool = False
    can_add_notes: bool = False
    can_view_reports: bool = False
    view_all_actions: bool = False
    can_edit_user: bool = False
    can_edit_action: bool = False
    can_edit_client: bool = False
    can_delete_client: bool = False
    can_edit_company: bool = False
    can_delete_company: bool = False
    view_only_assigned_actions: bool = False

    @classmethod
    def full(cls) -> "Capabilities":
        values = {flag: True for flag in CAPABILITY_FLAGS}
        values["view_only_assigned_actions"] = False
        return cls(**values)

    @classmethod
    def from_row(cls, row: models.UserPermission | None) -> "Capabilities":
        if row is None:
            return cls()
        return cls(**{flag: bool(getattr(row, flag)) for flag in CAPABILITY_FLAGS})

    @classmethod
    def for_user(cls, db: Session, user: models.User) -> "Capabilities":
        if user.role == "master":
            return cls.full()
        row = (
            db.query(models.UserPermission)
            .filter(models.UserPermission.user_id == user.id)
            .first()
        )
        return cls.from_row(row)

    def has(self, flag: str) -> bool:
        return bool(getattr(self, flag, False))

    @property
    def restricted_to_assigned(self) -> bool:
        return self.view_only_assigned_actions and not self.view_all_actions

    def as_dict(self) -> dict[str, bool]:
        return {field.name: getattr(self, field.name) for field in fields(self)}


def get_capabilities(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Capabilities:
    return Capabilities.for_user(db, user)


def require_capability(flag: str):
    if flag not in CAPABILITY_FLAGS:
        raise ValueError(f"Permissao desconhecida: {flag}")

    def _dependency(
        user: models.User = Depends(get_current_user),
        capabilities: Capabilities = Depends(get_capabilities),
    ) -> models.User:
        if not capabilities.has(flag):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")
        return user

    return _dependency


def is_master(user: models.User) -> bool:
    return user.role == "master"


def accessible_company_ids(user: models.User) -> list[str] | None:
    """None significa acesso a todas as empresas."""
    if is_master(user):
        return None
    return list(user.company_ids or [])


def ensure_company_access(user: models.User, company_id: str | None) -> None:
    allowed = accessible_company_ids(user)
    if allowed is None:
        return
    if not company_id or company_id not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Usuario sem acesso a esta empresa.",
        )
