import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gestao_acoes.db import models
from gestao_acoes.services import local_cache


@pytest.fixture(autouse=True)
def tmp_cache(tmp_path, monkeypatch):
    cache = local_cache.LocalCache(str(tmp_path / "cache"))
    monkeypatch.setattr(local_cache, "_default_cache", cache)
    return cache


@pytest.fixture()
def db_engine(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCAL_STORAGE", "1")
    monkeypatch.setenv("LOCAL_STORAGE_DIR", str(tmp_path / "storage"))
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()
    os.environ.pop("LOCAL_STORAGE", None)
    os.environ.pop("LOCAL_STORAGE_DIR", None)


@pytest.fixture()
def db_session(db_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = SessionLocal()
    yield db
    db.close()


@pytest.fixture()
def directory_seed(db_session):
    """Empresa principal, um cliente, um responsavel, um solicitante e dois usuarios."""
    company = models.Company(name="Empresa Principal", is_main=True)
    db_session.add(company)
    db_session.flush()
    client = models.Client(name="Cliente A", company_id=company.id)
    master = models.User(
        name="Master",
        cpf="11111111111",
        email="master@example.com",
        password_hash="x",
        role="master",
        status="active",
        company_ids=[company.id],
    )
    member = models.User(
        name="Membro",
        cpf="22222222222",
        email="membro@example.com",
        password_hash="x",
        role="user",
        status="active",
        company_ids=[company.id],
    )
    db_session.add_all([client, master, member])
    db_session.flush()
    responsible = models.Responsible(
        name="Joana", type="responsible", company_id=company.id, user_id=member.id, is_system_user=True
    )
    requester = models.Responsible(
        name="Carlos", type="requester", company_id=company.id, user_id=master.id, is_system_user=True
    )
    db_session.add_all([responsible, requester])
    db_session.commit()
    return {
        "company": company,
        "client": client,
        "master": master,
        "member": member,
        "responsible": responsible,
        "requester": requester,
    }


@pytest.fixture()
def make_action(db_session, directory_seed):
    def _make(**overrides):
        now = datetime.utcnow()
        values = {
            "subject": "Revisar contrato",
            "description": "",
            "status": "pendente",
            "responsible_id": directory_seed["responsible"].id,
            "requester_id": directory_seed["requester"].id,
            "company_id": directory_seed["company"].id,
            "client_id": directory_seed["client"].id,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=5),
            "created_by": directory_seed["master"].id,
            "created_by_name": "Master",
        }
        values.update(overrides)
        action = models.Action(**values)
        db_session.add(action)
        db_session.commit()
        db_session.refresh(action)
        return action

    return _make
