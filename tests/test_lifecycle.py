from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from gestao_acoes.core.authorization import Capabilities
from gestao_acoes.core.errors import PermissionDeniedError, ValidationError
from gestao_acoes.db import models
from gestao_acoes.services import lifecycle


def _notifications(db, recipient_id):
    return (
        db.query(models.InternalNotification)
        .filter(models.InternalNotification.recipient_id == recipient_id)
        .all()
    )


def test_complete_moves_to_awaiting_approval_and_notifies_requester(db_session, directory_seed, make_action):
    action = make_action()
    requester_id = directory_seed["requester"].id
    notes_before = len(action.notes)

    lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])

    db_session.refresh(action)
    assert action.status == lifecycle.AGUARDANDO_APROVACAO
    assert action.completion_notes == "Done"
    assert action.completed_at is None
    assert len(action.notes) == notes_before + 1
    assert action.notes[-1].content == "[CONCLUSÃO] Done"
    sent = _notifications(db_session, requester_id)
    assert len(sent) == 1
    assert sent[0].reference_id == action.id
    assert sent[0].reference_type == "acao"


def test_complete_without_requester_changes_nothing(db_session, directory_seed, make_action):
    action = make_action(requester_id=None)

    with patch.object(lifecycle.notifications, "send_approval_notification") as send:
        with pytest.raises(ValidationError):
            lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])
        send.assert_not_called()

    db_session.refresh(action)
    assert action.status == lifecycle.PENDENTE
    assert action.notes == []
    assert db_session.query(models.InternalNotification).count() == 0


@pytest.mark.parametrize("justification", ["", "   ", None])
def test_complete_requires_justification(db_session, directory_seed, make_action, justification):
    action = make_action()
    with pytest.raises(ValidationError):
        lifecycle.complete_action(db_session, action, justification, directory_seed["member"])
    db_session.refresh(action)
    assert action.status == lifecycle.PENDENTE
    assert action.completion_notes is None


def test_complete_rejects_terminal_action(db_session, directory_seed, make_action):
    action = make_action(status=lifecycle.CONCLUIDO, completed_at=datetime.utcnow())
    with pytest.raises(ValidationError):
        lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])


def test_complete_survives_notification_failure(db_session, directory_seed, make_action):
    action = make_action()
    with patch(
        "gestao_acoes.services.lifecycle.notifications.send_approval_notification",
        return_value=False,
    ) as send:
        lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])
    send.assert_called_once()
    assert action.status == lifecycle.AGUARDANDO_APROVACAO


def test_approve_sets_completed_at_and_notifies_responsible(db_session, directory_seed, make_action):
    action = make_action()
    lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])

    lifecycle.approve_action(db_session, action, directory_seed["master"])

    db_session.refresh(action)
    assert action.status == lifecycle.CONCLUIDO
    assert action.completed_at is not None
    assert action.notes[-1].content.startswith("[APROVAÇÃO]")
    assert len(_notifications(db_session, directory_seed["responsible"].id)) == 1


def test_reject_returns_to_pending(db_session, directory_seed, make_action):
    action = make_action()
    lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])

    lifecycle.reject_action(db_session, action, "Faltou o anexo", directory_seed["master"])

    db_session.refresh(action)
    assert action.status == lifecycle.PENDENTE
    assert action.completed_at is None
    assert action.notes[-1].content == "[REPROVAÇÃO] Faltou o anexo"


def test_only_requester_can_review(db_session, directory_seed, make_action):
    action = make_action()
    lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])
    with pytest.raises(PermissionDeniedError):
        lifecycle.approve_action(db_session, action, directory_seed["member"])
    with pytest.raises(ValidationError):
        lifecycle.reject_action(db_session, action, "", directory_seed["master"])


def test_approve_requires_awaiting_status(db_session, directory_seed, make_action):
    action = make_action()
    with pytest.raises(ValidationError):
        lifecycle.approve_action(db_session, action, directory_seed["master"])


def test_manual_status_respects_capabilities(db_session, make_action):
    action = make_action()
    with pytest.raises(PermissionDeniedError):
        lifecycle.set_status(db_session, action, lifecycle.CONCLUIDO, Capabilities())
    with pytest.raises(PermissionDeniedError):
        lifecycle.set_status(db_session, action, lifecycle.ATRASADO, Capabilities())
    with pytest.raises(ValidationError):
        lifecycle.set_status(db_session, action, lifecycle.AGUARDANDO_APROVACAO, Capabilities.full())
    with pytest.raises(ValidationError):
        lifecycle.set_status(db_session, action, "arquivada", Capabilities.full())

    lifecycle.set_status(db_session, action, lifecycle.CONCLUIDO, Capabilities(can_mark_complete=True))
    assert action.completed_at is not None

    lifecycle.set_status(db_session, action, lifecycle.PENDENTE, Capabilities())
    assert action.status == lifecycle.PENDENTE
    assert action.completed_at is None


def test_refresh_overdue_only_touches_open_actions(db_session, make_action):
    now = datetime.utcnow()
    past = now - timedelta(days=1)
    overdue = make_action(end_date=past, start_date=past - timedelta(days=2))
    awaiting = make_action(
        status=lifecycle.AGUARDANDO_APROVACAO, end_date=past, start_date=past - timedelta(days=2)
    )
    future = make_action()

    assert lifecycle.is_overdue(overdue, now)
    assert not lifecycle.is_overdue(awaiting, now)

    changed = lifecycle.refresh_overdue(db_session, now)

    assert changed == 1
    for action in (overdue, awaiting, future):
        db_session.refresh(action)
    assert overdue.status == lifecycle.ATRASADO
    assert awaiting.status == lifecycle.AGUARDANDO_APROVACAO
    assert future.status == lifecycle.PENDENTE


def test_mark_viewed_only_for_responsible(db_session, directory_seed, make_action):
    action = make_action(status=lifecycle.NAO_VISUALIZADA)

    lifecycle.mark_viewed(db_session, action, directory_seed["master"])
    assert action.status == lifecycle.NAO_VISUALIZADA

    lifecycle.mark_viewed(db_session, action, directory_seed["member"])
    assert action.status == lifecycle.NAO_INICIADA


def test_completion_example_with_fixed_ids(db_session, directory_seed):
    requester = models.Responsible(
        id="2", name="Bruno", type="requester", company_id=directory_seed["company"].id
    )
    db_session.add(requester)
    db_session.commit()
    now = datetime.utcnow()
    action = models.Action(
        id="1",
        subject="Exemplo",
        status=lifecycle.PENDENTE,
        responsible_id=directory_seed["responsible"].id,
        requester_id="2",
        company_id=directory_seed["company"].id,
        start_date=now,
        end_date=now + timedelta(days=1),
    )
    db_session.add(action)
    db_session.commit()

    with patch.object(
        lifecycle.notifications,
        "send_approval_notification",
        wraps=lifecycle.notifications.send_approval_notification,
    ) as send:
        lifecycle.complete_action(db_session, action, "Done", directory_seed["member"])

    assert action.status == "aguardando_aprovacao"
    assert len(action.notes) == 1
    send.assert_called_once()
    assert send.call_args.args[1] == "2"
    assert [item.recipient_id for item in _notifications(db_session, "2")] == ["2"]
