from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
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

router = APIRouter(tags=["Empresas"])


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    logo: Optional[str] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None
    phone: Optional[str] = None


class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    logo: Optional[str] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None
    phone: Optional[str] = None


class CompanyResponse(BaseModel):
    id: str
    name: str
    logo: Optional[str] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None
    phone: Optional[str] = None
    is_main: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/empresas", response_model=list[CompanyResponse])
def list_companies(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return directory.list_companies(db, company_ids=accessible_company_ids(current_user))


@router.get("/empresas/{company_id}", response_model=CompanyResponse)
def get_company(
    company_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_company_access(current_user, company_id)
    return directory.get_company(db, company_id)


@router.post("/empresas", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
def create_company(
    payload: CompanyCreate,
    current_user: models.User = Depends(require_capability("can_edit_company")),
    db: Session = Depends(get_db),
):
    return directory.create_company(db, payload.model_dump())


@router.put("/empresas/{company_id}", response_model=CompanyResponse)
def update_company(
    company_id: str,
    payload: CompanyUpdate,
    current_user: models.User = Depends(require_capability("can_edit_company")),
    db: Session = Depends(get_db),
):
    ensure_company_access(current_user, company_id)
    return directory.update_company(db, company_id, payload.model_dump(exclude_unset=True))


@router.delete("/empresas/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_company(
    company_id: str,
    current_user: models.User = Depends(require_capability("can_delete_company")),
    db: Session = Depends(get_db),
):
    ensure_company_access(current_user, company_id)
    directory.delete_company(db, company_id)
