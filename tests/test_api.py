from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from gestao_acoes.core.config import settings
from gestao_acoes.core.security import create_access_token, get_password_hash
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.main import app


@pytest.fixture()
def client(db_engine, directory_seed):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_login_by_email_or_cpf(client, db_session, directory_seed):
    master = directory_seed["master"]
    master.password_hash = get_password_hash("senha123")
    db_session.commit()

    by_email = client.post("/api/auth/login", json={"usuario": "MASTER@example.com", "senha": "senha123"})
    assert by_email.status_code == 200
    assert by_email.json()["role"] == "master"

    by_cpf = client.post("/api/auth/login", json={"usuario": "111.111.111-11", "senha": "senha123"})
    assert by_cpf.status_code == 200

    wrong = client.post("/api/auth/login", json={"usuario": "master@example.com", "senha": "errada"})
    assert wrong.status_code == 401

    token = by_email.json()["access_token"]
    me = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["permissions"]["can_delete_company"] is True
    assert me.json()["scope"]["company_ids"] is None


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/acoes").status_code == 401


def test_client_create_requires_company_and_capability(client, db_session, directory_seed):
    master = directory_seed["master"]
    db_session.add(models.Company(name="Segunda Empresa"))
    db_session.commit()
    response = client.post("/api/clientes", json={"name": "Sem empresa"}, headers=_auth(master))
    assert response.status_code == 400
    assert response.json()["detail"] == "Selecione uma empresa"

    denied = client.post(
        "/api/clientes",
        json={"name": "Novo", "company_id": directory_seed["company"].id},
        headers=_auth(directory_seed["member"]),
    )
    assert denied.status_code == 403

    created = client.post(
        "/api/clientes",
        json={"name": "Novo", "company_id": directory_seed["company"].id},
        headers=_auth(master),
    )
    assert created.status_code == 201

    listed = client.get(
        "/api/clientes", params={"company_id": directory_seed["company"].id}, headers=_auth(master)
    )
    assert [item["name"] for item in listed.json()] == ["Cliente A", "Novo"]


def test_delete_system_responsible_returns_400(client, directory_seed):
    response = client.delete(
        f"/api/responsaveis/{directory_seed['responsible'].id}", headers=_auth(directory_seed["master"])
    )
    assert response.status_code == 400


def test_action_completion_flow(client, directory_seed):
    master = directory_seed["master"]
    member = directory_seed["member"]
    payload = {
        "subject": "Auditoria",
        "responsible_id": directory_seed["responsible"].id,
        "requester_id": directory_seed["requester"].id,
        "company_id": directory_seed["company"].id,
        "end_date": (datetime.utcnow() + timedelta(days=3)).isoformat(),
    }
    created = client.post("/api/acoes", json=payload, headers=_auth(master))
    assert created.status_code == 201
    action_id = created.json()["id"]

    empty = client.post(f"/api/acoes/{action_id}/concluir", json={"justification": " "}, headers=_auth(member))
    assert empty.status_code == 400

    done = client.post(f"/api/acoes/{action_id}/concluir", json={"justification": "Done"}, headers=_auth(member))
    assert done.status_code == 200
    body = done.json()
    assert body["status"] == "aguardando_aprovacao"
    assert [note["content"] for note in body["notes"]] == ["[CONCLUSÃO] Done"]

    forbidden = client.post(f"/api/acoes/{action_id}/aprovar", json={}, headers=_auth(member))
    assert forbidden.status_code == 403

    approved = client.post(f"/api/acoes/{action_id}/aprovar", json={}, headers=_auth(master))
    assert approved.status_code == 200
    assert approved.json()["status"] == "concluido"
    assert approved.json()["completed_at"] is not None

    summary = client.get("/api/acoes/resumo", headers=_auth(master)).json()
    assert summary["completed"] == 1
    assert summary["completion_rate"] == 100

    inbox = client.get("/api/notificacoes", headers=_auth(master)).json()
    assert [item["reference_id"] for item in inbox] == [action_id]


def test_manual_status_change_needs_capability(client, directory_seed, make_action):
    action = make_action()
    denied = client.patch(
        f"/api/acoes/{action.id}/status", json={"status": "concluido"}, headers=_auth(directory_seed["member"])
    )
    assert denied.status_code == 403
    allowed = client.patch(
        f"/api/acoes/{action.id}/status", json={"status": "concluido"}, headers=_auth(directory_seed["master"])
    )
    assert allowed.status_code == 200
    assert allowed.json()["status"] == "concluido"


def test_kanban_and_missing_action(client, directory_seed, make_action):
    make_action()
    board = client.get("/api/acoes/kanban", headers=_auth(directory_seed["master"])).json()
    counts = {column["status"]: len(column["items"]) for column in board["columns"]}
    assert counts["pendente"] == 1
    assert counts["concluido"] == 0

    missing = client.get("/api/acoes/nao-existe", headers=_auth(directory_seed["master"]))
    assert missing.status_code == 404


def test_admin_endpoints_require_token(client, db_session, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_PROVISIONING_TOKEN", "token-secreto")
    body = {"email": "novo@example.com", "password": "segredo123", "name": "Novo", "cpf": "55555555555"}

    assert client.post("/api/admin/create-master-user", json=body).status_code == 403
    assert (
        client.post("/api/admin/create-master-user", json=body, headers={"X-Admin-Token": "errado"}).status_code
        == 403
    )

    created = client.post("/api/admin/create-master-user", json=body, headers={"X-Admin-Token": "token-secreto"})
    assert created.status_code == 200
    assert created.json() == {"success": True, "message": "O usuario master foi criado com sucesso"}

    again = client.post("/api/admin/create-master-user", json=body, headers={"X-Admin-Token": "token-secreto"})
    assert again.status_code == 400
    assert again.json()["success"] is False
    assert db_session.query(models.User).filter(models.User.email == "novo@example.com").count() == 1


def test_single_company_user_gets_company_selected(client, db_session, directory_seed):
    member = directory_seed["member"]
    db_session.add(models.Company(name="Outra Empresa"))
    db_session.add(models.UserPermission(user_id=member.id, can_edit_client=True, can_create=True))
    db_session.commit()

    created = client.post("/api/clientes", json={"name": "Cliente do membro"}, headers=_auth(member))
    assert created.status_code == 201
    assert created.json()["company_id"] == directory_seed["company"].id

    action = client.post(
        "/api/acoes",
        json={
            "subject": "Sem empresa informada",
            "responsible_id": directory_seed["responsible"].id,
            "end_date": (datetime.utcnow() + timedelta(days=2)).isoformat(),
        },
        headers=_auth(member),
    )
    assert action.status_code == 201
    assert action.json()["company_id"] == directory_seed["company"].id


def test_action_accepts_dates_with_timezone(client, directory_seed):
    master = directory_seed["master"]
    payload = {
        "subject": "Prazo em UTC",
        "responsible_id": directory_seed["responsible"].id,
        "company_id": directory_seed["company"].id,
        "end_date": "2030-01-01T00:00:00Z",
    }
    created = client.post("/api/acoes", json=payload, headers=_auth(master))
    assert created.status_code == 201
    assert created.json()["end_date"].startswith("2030-01-01T00:00:00")
    action_id = created.json()["id"]

    updated = client.put(
        f"/api/acoes/{action_id}",
        json={"start_date": "2029-12-01T09:00:00-03:00", "end_date": "2030-01-02T00:00:00+00:00"},
        headers=_auth(master),
    )
    assert updated.status_code == 200
    assert updated.json()["start_date"].startswith("2029-12-01T12:00:00")

    invalid = client.put(
        f"/api/acoes/{action_id}", json={"end_date": "2029-11-01T00:00:00Z"}, headers=_auth(master)
    )
    assert invalid.status_code == 400

    window = client.get(
        "/api/acoes/calendario",
        params={"start": "2029-12-15T00:00:00Z", "end": "2030-01-31T00:00:00"},
        headers=_auth(master),
    )
    assert window.status_code == 200
    assert [item["id"] for item in window.json()] == [action_id]


def test_update_rejects_null_start_date(client, directory_seed, make_action):
    action = make_action()
    response = client.put(
        f"/api/acoes/{action.id}", json={"start_date": None}, headers=_auth(directory_seed["master"])
    )
    assert response.status_code == 400


def test_get_action_marks_overdue(client, directory_seed, make_action):
    past = datetime.utcnow() - timedelta(days=1)
    action = make_action(start_date=past - timedelta(days=2), end_date=past)

    response = client.get(f"/api/acoes/{action.id}", headers=_auth(directory_seed["master"]))

    assert response.status_code == 200
    assert response.json()["status"] == "atrasado"
