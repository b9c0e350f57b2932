from datetime import datetime, timedelta
from io import BytesIO
from types import SimpleNamespace

import pytest

from gestao_acoes.core.authorization import Capabilities
from gestao_acoes.core.errors import NotFoundError, ValidationError
from gestao_acoes.db import models
from gestao_acoes.services import actions, lifecycle
from gestao_acoes.services.storage import StorageClient


def _fake(status):
    return SimpleNamespace(status=status)


@pytest.mark.parametrize(
    "completed,total,expected",
    [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 200, 1), (3, 3, 100)],
)
def test_completion_rate_rounds_half_up(completed, total, expected):
    assert actions.completion_rate(completed, total) == expected


def test_summary_counts_each_status():
    items = [
        _fake(lifecycle.CONCLUIDO),
        _fake(lifecycle.CONCLUIDO),
        _fake(lifecycle.PENDENTE),
        _fake(lifecycle.ATRASADO),
        _fake(lifecycle.AGUARDANDO_APROVACAO),
        _fake(lifecycle.NAO_INICIADA),
    ]
    summary = actions.get_summary(items)
    assert summary.completed == 2
    assert summary.pending == 1
    assert summary.delayed == 1
    assert summary.awaiting_approval == 1
    assert summary.total == 6
    assert summary.completion_rate == 33


def test_summary_of_empty_collection():
    summary = actions.get_summary([])
    assert summary.total == 0
    assert summary.completion_rate == 0


def test_summary_is_recomputed_from_collection():
    items = [_fake(lifecycle.PENDENTE)]
    assert actions.get_summary(items).completion_rate == 0
    items[0].status = lifecycle.CONCLUIDO
    assert actions.get_summary(items).completion_rate == 100


def test_group_by_status_has_every_column():
    columns = actions.group_by_status([_fake(lifecycle.PENDENTE), _fake(lifecycle.CONCLUIDO)])
    assert list(columns) == list(lifecycle.STATUSES)
    assert len(columns[lifecycle.PENDENTE]) == 1
    assert columns[lifecycle.ATRASADO] == []


def test_create_action_validates_references(db_session, directory_seed):
    user = directory_seed["master"]
    base = {
        "subject": "Enviar proposta",
        "responsible_id": directory_seed["responsible"].id,
        "company_id": directory_seed["company"].id,
        "end_date": datetime.utcnow() + timedelta(days=2),
    }
    with pytest.raises(ValidationError):
        actions.create_action(db_session, {**base, "company_id": "nao-existe"}, user)
    with pytest.raises(ValidationError):
        actions.create_action(db_session, {**base, "client_id": "nao-existe"}, user)
    with pytest.raises(ValidationError):
        actions.create_action(db_session, {**base, "subject": "  "}, user)
    with pytest.raises(ValidationError):
        actions.create_action(
            db_session, {**base, "start_date": base["end_date"] + timedelta(days=1)}, user
        )
    with pytest.raises(ValidationError):
        actions.create_action(db_session, {**base, "status": lifecycle.CONCLUIDO}, user)
    assert db_session.query(models.Action).count() == 0

    action = actions.create_action(db_session, base, user)
    assert action.status == lifecycle.PENDENTE
    assert action.created_by == user.id
    assert action.created_by_name == "Master"


def test_update_action_merges_patch(db_session, directory_seed, make_action):
    action = make_action(description="antes")
    updated = actions.update_action(db_session, action.id, {"subject": "Novo assunto", "client_id": None})
    assert updated.subject == "Novo assunto"
    assert updated.client_id is None
    assert updated.description == "antes"

    with pytest.raises(ValidationError):
        actions.update_action(db_session, action.id, {"status": lifecycle.CONCLUIDO})
    with pytest.raises(ValidationError):
        actions.update_action(db_session, action.id, {"responsible_id": "nao-existe"})
    with pytest.raises(NotFoundError):
        actions.update_action(db_session, "nao-existe", {"subject": "x"})


def test_delete_action_cascades_notes(db_session, directory_seed, make_action):
    action = make_action()
    actions.add_note(db_session, action.id, "primeira", directory_seed["member"])

    actions.delete_action(db_session, action.id)

    assert db_session.query(models.Action).count() == 0
    assert db_session.query(models.ActionNote).count() == 0
    with pytest.raises(NotFoundError):
        actions.delete_action(db_session, action.id)


def test_notes_are_soft_deleted(db_session, directory_seed, make_action):
    action = make_action()
    with pytest.raises(ValidationError):
        actions.add_note(db_session, action.id, "   ", directory_seed["member"])

    note = actions.add_note(db_session, action.id, "Cliente retornou", directory_seed["member"])
    actions.delete_note(db_session, action.id, note.id)

    db_session.refresh(action)
    assert len(action.notes) == 1
    assert action.notes[0].is_deleted is True
    with pytest.raises(NotFoundError):
        actions.delete_note(db_session, action.id, "nao-existe")


def test_list_actions_filters_and_visibility(db_session, directory_seed, make_action):
    other = models.Responsible(name="Outro", company_id=directory_seed["company"].id)
    db_session.add(other)
    db_session.commit()
    mine = make_action(subject="Minha")
    make_action(subject="De outro", responsible_id=other.id, created_by="alguem")

    everything = actions.list_actions(db_session, directory_seed["master"], Capabilities.full())
    assert len(everything) == 2

    restricted = Capabilities(view_only_assigned_actions=True)
    visible = actions.list_actions(db_session, directory_seed["member"], restricted)
    assert [item.id for item in visible] == [mine.id]

    filtered = actions.list_actions(
        db_session, directory_seed["master"], Capabilities.full(), responsible_id=other.id
    )
    assert [item.subject for item in filtered] == ["De outro"]
    assert len(
        actions.list_actions(db_session, directory_seed["master"], Capabilities.full(), status="all")
    ) == 2


def test_list_actions_hides_other_companies(db_session, directory_seed, make_action):
    second = models.Company(name="Filial")
    db_session.add(second)
    db_session.commit()
    responsible = models.Responsible(name="Filial R", company_id=second.id)
    db_session.add(responsible)
    db_session.commit()
    make_action()
    make_action(company_id=second.id, responsible_id=responsible.id, client_id=None, requester_id=None)

    visible = actions.list_actions(db_session, directory_seed["member"], Capabilities.full())
    assert {item.company_id for item in visible} == {directory_seed["company"].id}


def test_list_actions_calendar_window(db_session, directory_seed, make_action):
    now = datetime.utcnow()
    make_action(subject="Semana", start_date=now, end_date=now + timedelta(days=3))
    make_action(subject="Mes que vem", start_date=now + timedelta(days=30), end_date=now + timedelta(days=35))

    window = actions.list_actions(
        db_session,
        directory_seed["master"],
        Capabilities.full(),
        start=now - timedelta(days=1),
        end=now + timedelta(days=7),
    )
    assert [item.subject for item in window] == ["Semana"]


def test_attachment_upload_and_size_limit(db_session, directory_seed, make_action, monkeypatch):
    action = make_action()
    storage = StorageClient()

    attachment = actions.add_attachment(
        db_session, action.id, BytesIO(b"conteudo"), "relatorio final.pdf", "application/pdf",
        directory_seed["member"], storage=storage,
    )
    assert attachment.size == len(b"conteudo")
    assert attachment.file_path.startswith("file://")
    assert actions.attachment_url(attachment, storage=storage) == attachment.file_path

    monkeypatch.setattr(actions.settings, "MAX_ATTACHMENT_BYTES", 4)
    with pytest.raises(ValidationError):
        actions.add_attachment(
            db_session, action.id, BytesIO(b"grande demais"), "big.bin", None,
            directory_seed["member"], storage=storage,
        )
    db_session.refresh(action)
    assert len(action.attachments) == 1


def test_due_reminders_use_notification_settings(db_session, directory_seed, make_action):
    now = datetime.utcnow()
    soon = make_action(subject="Vence logo", end_date=now + timedelta(hours=5))
    make_action(subject="Vence depois", end_date=now + timedelta(days=3))
    make_action(subject="Ja concluida", status=lifecycle.CONCLUIDO, end_date=now + timedelta(hours=2))

    due = actions.due_reminders(db_session, directory_seed["member"], now)

    assert [item.id for item in due] == [soon.id]
