"""Cadastro de empresas, clientes e responsaveis.

Leituras de empresas e clientes atualizam a copia local; se o banco falhar
a leitura cai para essa copia. Toda escrita invalida a copia.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gestao_acoes.core.errors import BackendError, NotFoundError, ValidationError
from gestao_acoes.db import models
from gestao_acoes.db.session import commit_or_rollback
from gestao_acoes.services.local_cache import LocalCache, LocalCacheError, get_local_cache

logger = logging.getLogger("gestao_acoes.directory")

COMPANIES_KEY = "companies"
CLIENTS_KEY = "clients"
RESPONSIBLE_TYPES = {"responsible", "requester"}

COMPANY_FIELDS = ("name", "logo", "address", "cnpj", "phone")
CLIENT_FIELDS = ("name", "contact_email", "contact_phone", "address", "cnpj", "company_id")
RESPONSIBLE_FIELDS = ("name", "email", "phone", "department", "role", "type", "company_id", "client_ids")


def clean_text(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    cleaned = value.strip()
    return cleaned or None


def _company_to_cache(company: models.Company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "logo": company.logo,
        "address": company.address,
        "cnpj": company.cnpj,
        "phone": company.phone,
        "is_main": company.is_main,
        "created_at": company.created_at,
        "updated_at": company.updated_at,
    }


def _client_to_cache(client: models.Client) -> dict:
    return {
        "id": client.id,
        "name": client.name,
        "contact_email": client.contact_email,
        "contact_phone": client.contact_phone,
        "address": client.address,
        "cnpj": client.cnpj,
        "company_id": client.company_id,
        "created_at": client.created_at,
        "updated_at": client.updated_at,
    }


def _hydrate(model_cls, item: dict):
    values = dict(item)
    for key in ("created_at", "updated_at"):
        if isinstance(values.get(key), str):
            values[key] = datetime.fromisoformat(values[key])
    return model_cls(**values)


def _read_with_fallback(
    db: Session,
    key: str,
    query: Callable[[], list],
    serialize: Callable[[Any], dict],
    model_cls,
    cache: LocalCache,
) -> list:
    try:
        items = query()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Falha ao ler %s do banco, usando copia local: %s", key, exc)
        try:
            cached = cache.load(key)
        except LocalCacheError as cache_exc:
            raise BackendError(f"Nao foi possivel carregar {key}.") from cache_exc
        if cached is None:
            raise BackendError(f"Nao foi possivel carregar {key}.") from exc
        return [_hydrate(model_cls, item) for item in cached]
    cache.store(key, [serialize(item) for item in items])
    return items


# Empresas


def list_companies(
    db: Session,
    company_ids: Optional[Iterable[str]] = None,
    cache: Optional[LocalCache] = None,
) -> list[models.Company]:
    cache = cache or get_local_cache()
    companies = _read_with_fallback(
        db,
        COMPANIES_KEY,
        lambda: db.query(models.Company).order_by(models.Company.created_at.asc()).all(),
        _company_to_cache,
        models.Company,
        cache,
    )
    if company_ids is None:
        return companies
    allowed = set(company_ids)
    return [company for company in companies if company.id in allowed]


def get_company(db: Session, company_id: str) -> models.Company:
    company = db.query(models.Company).filter(models.Company.id == company_id).first()
    if not company:
        raise NotFoundError("Empresa nao encontrada")
    return company


def get_main_company(db: Session) -> models.Company | None:
    return db.query(models.Company).filter(models.Company.is_main.is_(True)).first()


def create_company(db: Session, data: dict, cache: Optional[LocalCache] = None) -> models.Company:
    name = clean_text(data.get("name"))
    if not name:
        raise ValidationError("Nome da empresa e obrigatorio")
    company = models.Company(
        name=name,
        logo=clean_text(data.get("logo")),
        address=clean_text(data.get("address")),
        cnpj=clean_text(data.get("cnpj")),
        phone=clean_text(data.get("phone")),
        is_main=get_main_company(db) is None,
    )
    db.add(company)
    commit_or_rollback(db, "empresa")
    db.refresh(company)
    (cache or get_local_cache()).invalidate(COMPANIES_KEY)
    logger.info("Empresa criada id=%s", company.id)
    return company


def update_company(
    db: Session, company_id: str, data: dict, cache: Optional[LocalCache] = None
) -> models.Company:
    company = get_company(db, company_id)
    for field in COMPANY_FIELDS:
        if field not in data or data[field] is None:
            continue
        value = clean_text(data[field])
        if field == "name" and not value:
            raise ValidationError("Nome da empresa e obrigatorio")
        setattr(company, field, value)
    company.updated_at = datetime.utcnow()
    commit_or_rollback(db, "empresa")
    db.refresh(company)
    (cache or get_local_cache()).invalidate(COMPANIES_KEY)
    return company


def delete_company(db: Session, company_id: str, cache: Optional[LocalCache] = None) -> None:
    company = get_company(db, company_id)
    if company.is_main:
        raise ValidationError("A empresa principal nao pode ser excluida")
    in_use = (
        db.query(models.Client).filter(models.Client.company_id == company_id).count()
        + db.query(models.Responsible).filter(models.Responsible.company_id == company_id).count()
        + db.query(models.Action).filter(models.Action.company_id == company_id).count()
    )
    if in_use:
        raise ValidationError("Empresa possui clientes, responsaveis ou acoes vinculados")
    db.delete(company)
    commit_or_rollback(db, "empresa")
    (cache or get_local_cache()).invalidate(COMPANIES_KEY, CLIENTS_KEY)
    logger.info("Empresa excluida id=%s", company_id)


def resolve_company_selection(
    db: Session, user: models.User, requested_company_id: Optional[str]
) -> str:
    """Empresa usada em um formulario: a pedida, ou a unica acessivel ao usuario."""
    requested = clean_text(requested_company_id)
    if user.role == "master":
        if requested:
            return get_company(db, requested).id
        companies = db.query(models.Company).all()
        if len(companies) == 1:
            return companies[0].id
        raise ValidationError("Selecione uma empresa")
    allowed = list(user.company_ids or [])
    if requested:
        if requested not in allowed:
            raise ValidationError("Usuario sem acesso a empresa selecionada")
        return get_company(db, requested).id
    if len(allowed) == 1:
        return get_company(db, allowed[0]).id
    raise ValidationError("Selecione uma empresa")


# Clientes


def list_clients(db: Session, cache: Optional[LocalCache] = None) -> list[models.Client]:
    return _read_with_fallback(
        db,
        CLIENTS_KEY,
        lambda: db.query(models.Client).order_by(models.Client.created_at.asc()).all(),
        _client_to_cache,
        models.Client,
        cache or get_local_cache(),
    )


def filter_clients_by_company(clients: list, company_id: Optional[str]) -> list:
    if not company_id:
        return []
    if company_id == "all":
        return list(clients)
    return [client for client in clients if client.company_id == company_id]


def get_clients_by_company(
    db: Session, company_id: Optional[str], cache: Optional[LocalCache] = None
) -> list[models.Client]:
    if not company_id:
        return []
    return filter_clients_by_company(list_clients(db, cache=cache), company_id)


def get_client(db: Session, client_id: str) -> models.Client:
    client = db.query(models.Client).filter(models.Client.id == client_id).first()
    if not client:
        raise NotFoundError("Cliente nao encontrado")
    return client


def _require_company(db: Session, company_id: Optional[str], message: str) -> str:
    company_id = clean_text(company_id)
    if not company_id:
        raise ValidationError(message)
    exists = db.query(models.Company.id).filter(models.Company.id == company_id).first()
    if not exists:
        raise ValidationError("Empresa informada nao existe")
    return company_id


def create_client(db: Session, data: dict, cache: Optional[LocalCache] = None) -> models.Client:
    company_id = _require_company(
        db, data.get("company_id"), "E necessario associar o cliente a uma empresa"
    )
    name = clean_text(data.get("name"))
    if not name:
        raise ValidationError("Nome do cliente e obrigatorio")
    client = models.Client(
        name=name,
        contact_email=clean_text(data.get("contact_email")),
        contact_phone=clean_text(data.get("contact_phone")),
        address=clean_text(data.get("address")),
        cnpj=clean_text(data.get("cnpj")),
        company_id=company_id,
    )
    db.add(client)
    commit_or_rollback(db, "cliente")
    db.refresh(client)
    (cache or get_local_cache()).invalidate(CLIENTS_KEY)
    logger.info("Cliente criado id=%s empresa=%s", client.id, company_id)
    return client


def update_client(
    db: Session, client_id: str, data: dict, cache: Optional[LocalCache] = None
) -> models.Client:
    client = get_client(db, client_id)
    if "company_id" in data and data["company_id"] is not None:
        client.company_id = _require_company(
            db, data["company_id"], "E necessario associar o cliente a uma empresa"
        )
    for field in CLIENT_FIELDS:
        if field == "company_id" or field not in data or data[field] is None:
            continue
        value = clean_text(data[field])
        if field == "name" and not value:
            raise ValidationError("Nome do cliente e obrigatorio")
        setattr(client, field, value)
    client.updated_at = datetime.utcnow()
    commit_or_rollback(db, "cliente")
    db.refresh(client)
    (cache or get_local_cache()).invalidate(CLIENTS_KEY)
    return client


def delete_client(db: Session, client_id: str, cache: Optional[LocalCache] = None) -> None:
    client = get_client(db, client_id)
    if db.query(models.Action).filter(models.Action.client_id == client_id).count():
        raise ValidationError("Cliente possui acoes vinculadas")
    db.delete(client)
    commit_or_rollback(db, "cliente")
    (cache or get_local_cache()).invalidate(CLIENTS_KEY)
    logger.info("Cliente excluido id=%s", client_id)


# Responsaveis e solicitantes


def list_responsibles(
    db: Session,
    responsible_type: Optional[str] = None,
    company_id: Optional[str] = None,
) -> list[models.Responsible]:
    query = db.query(models.Responsible)
    if responsible_type:
        query = query.filter(models.Responsible.type == responsible_type)
    if company_id and company_id != "all":
        query = query.filter(models.Responsible.company_id == company_id)
    return query.order_by(models.Responsible.name.asc()).all()


def get_responsibles_by_company(db: Session, company_id: Optional[str]) -> list[models.Responsible]:
    if not company_id:
        return []
    return list_responsibles(db, company_id=company_id)


def get_responsible(db: Session, responsible_id: str) -> models.Responsible:
    responsible = (
        db.query(models.Responsible).filter(models.Responsible.id == responsible_id).first()
    )
    if not responsible:
        raise NotFoundError("Responsavel nao encontrado")
    return responsible


def _validate_client_ids(db: Session, client_ids: Optional[list[str]]) -> list[str]:
    client_ids = [cid for cid in (client_ids or []) if cid]
    if not client_ids:
        return []
    found = {cid for (cid,) in db.query(models.Client.id).filter(models.Client.id.in_(client_ids))}
    missing = [cid for cid in client_ids if cid not in found]
    if missing:
        raise ValidationError("Clientes informados nao existem: " + ", ".join(missing))
    return client_ids


def add_responsible(db: Session, data: dict) -> models.Responsible:
    name = clean_text(data.get("name"))
    if not name:
        raise ValidationError("Nome do responsavel e obrigatorio")
    responsible_type = data.get("type") or "responsible"
    if responsible_type not in RESPONSIBLE_TYPES:
        raise ValidationError("Tipo de responsavel invalido")
    company_id = _require_company(
        db, data.get("company_id"), "E necessario associar o responsavel a uma empresa"
    )
    user_id = clean_text(data.get("user_id"))
    if user_id and not db.query(models.User.id).filter(models.User.id == user_id).first():
        raise ValidationError("Usuario vinculado nao existe")
    responsible = models.Responsible(
        name=name,
        email=clean_text(data.get("email")),
        phone=clean_text(data.get("phone")),
        department=clean_text(data.get("department")),
        role=clean_text(data.get("role")),
        type=responsible_type,
        company_id=company_id,
        user_id=user_id,
        client_ids=_validate_client_ids(db, data.get("client_ids")),
        is_system_user=bool(data.get("is_system_user")) or bool(user_id),
    )
    db.add(responsible)
    commit_or_rollback(db, "responsavel")
    db.refresh(responsible)
    logger.info("Responsavel criado id=%s tipo=%s", responsible.id, responsible.type)
    return responsible


def update_responsible(db: Session, responsible_id: str, data: dict) -> models.Responsible:
    responsible = get_responsible(db, responsible_id)
    if data.get("type") is not None and data["type"] not in RESPONSIBLE_TYPES:
        raise ValidationError("Tipo de responsavel invalido")
    if data.get("company_id") is not None:
        responsible.company_id = _require_company(
            db, data["company_id"], "E necessario associar o responsavel a uma empresa"
        )
    if data.get("client_ids") is not None:
        responsible.client_ids = _validate_client_ids(db, data["client_ids"])
    for field in RESPONSIBLE_FIELDS:
        if field in {"company_id", "client_ids"} or data.get(field) is None:
            continue
        value = clean_text(data[field])
        if field == "name" and not value:
            raise ValidationError("Nome do responsavel e obrigatorio")
        setattr(responsible, field, value)
    responsible.updated_at = datetime.utcnow()
    commit_or_rollback(db, "responsavel")
    db.refresh(responsible)
    return responsible


def delete_responsible(db: Session, responsible_id: str) -> None:
    responsible = get_responsible(db, responsible_id)
    if responsible.is_system_user:
        raise ValidationError(
            "Nao e possivel excluir um responsavel vinculado a um usuario do sistema"
        )
    referenced = (
        db.query(models.Action)
        .filter(
            (models.Action.responsible_id == responsible_id)
            | (models.Action.requester_id == responsible_id)
        )
        .count()
    )
    if referenced:
        raise ValidationError("Responsavel possui acoes vinculadas")
    db.delete(responsible)
    commit_or_rollback(db, "responsavel")
    logger.info("Responsavel excluido id=%s", responsible_id)


def linked_responsible_ids(db: Session, user: models.User) -> list[str]:
    """Ids de responsavel que representam o usuario (vinculo em qualquer dos lados)."""
    ids = [
        rid
        for (rid,) in db.query(models.Responsible.id).filter(models.Responsible.user_id == user.id)
    ]
    if user.responsible_id and user.responsible_id not in ids:
        ids.append(user.responsible_id)
    return ids
