"""Tests for routing notifications: enqueue, recipient resolution, rendering, delivery."""
import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from app.services import email as email_svc
from app.services.notifier import RoutingEvent, RoutingEventKind, notify
from app.workers.notification_tasks import deliver_routing_event, resolve_recipients


def _event(kind=RoutingEventKind.advanced, **overrides) -> RoutingEvent:
    fields = {
        "kind": kind,
        "reimbursement_id": uuid.uuid4(),
        "submitter_id": uuid.uuid4(),
        "status": "SUL Approved",
        "category": "Travel",
        "total": Decimal("1250.50"),
        "sap_code": "E-12345-0001",
        "level": 1,
        "actor_id": uuid.uuid4(),
        "actor_role": "SUL",
        "next_role": "Account Manager",
    }
    fields.update(overrides)
    return RoutingEvent(**fields)


# ─── notify ───────────────────────────────────────────────────────────────────

def test_notify_enqueues_json_payload():
    event = _event()
    with patch("app.workers.notification_tasks.deliver_routing_event.delay") as mock_delay:
        notify(event)

    mock_delay.assert_called_once()
    payload = mock_delay.call_args.args[0]
    assert payload["kind"] == "advanced"
    assert payload["reimbursement_id"] == str(event.reimbursement_id)
    assert payload["next_role"] == "Account Manager"


def test_notify_swallows_broker_errors():
    with patch(
        "app.workers.notification_tasks.deliver_routing_event.delay",
        side_effect=ConnectionError("redis unavailable"),
    ):
        notify(_event())  # must not raise


def test_recipient_role_is_submitter_once_terminal():
    assert _event(RoutingEventKind.submitted, next_role="SUL").recipient_role == "SUL"
    assert _event(RoutingEventKind.approved, next_role=None).recipient_role is None
    assert _event(RoutingEventKind.rejected, next_role=None).recipient_role is None


# ─── Recipients ───────────────────────────────────────────────────────────────

def test_resolve_recipients_for_next_sap_scoped_role(db, make_user):
    owner = make_user("Account Manager", sap_code_1="E-12345-0001")
    make_user("Account Manager", sap_code_1="E-99999-0009")
    inactive = make_user("Account Manager", sap_code_1="E-12345-0001")
    inactive.is_active = False
    db.commit()

    payload = _event().model_dump(mode="json")

    assert resolve_recipients(db, payload) == [owner.email]


def test_resolve_recipients_for_unscoped_role(db, make_user):
    first = make_user("Invoice Specialist")
    second = make_user("Invoice Specialist")
    payload = _event(next_role="Invoice Specialist").model_dump(mode="json")

    assert sorted(resolve_recipients(db, payload)) == sorted([first.email, second.email])


def test_resolve_recipients_for_terminal_event_is_submitter(db, make_user):
    submitter = make_user("Employee")
    payload = _event(
        RoutingEventKind.rejected, submitter_id=submitter.id, next_role=None, remarks="no receipt",
    ).model_dump(mode="json")

    assert resolve_recipients(db, payload) == [submitter.email]


# ─── Rendering ────────────────────────────────────────────────────────────────

def test_render_rejection_includes_reason():
    payload = _event(RoutingEventKind.rejected, next_role=None, remarks="missing receipt").model_dump(mode="json")

    message = email_svc.render_routing_email(payload, ["emp@example.com"])

    assert "rejected" in message.subject
    assert "E-12345-0001" in message.subject
    assert "Reason: missing receipt" in message.body
    assert message.to == ["emp@example.com"]


def test_render_advanced_names_previous_approver():
    message = email_svc.render_routing_email(_event().model_dump(mode="json"), ["am@example.com"])

    assert "awaiting your approval" in message.subject
    assert "Approved by SUL at level 1" in message.body
    assert "1,250.50" in message.body


def test_send_email_without_recipients_is_skipped(caplog):
    message = email_svc.RenderedEmail(to=[], subject="s", body="b")
    email_svc.send_email(message)
    assert "no recipients" in caplog.text


# ─── Delivery task ────────────────────────────────────────────────────────────

def test_deliver_routing_event_sends_to_resolved_recipients(session_factory, make_user):
    submitter = make_user("Employee")
    payload = _event(RoutingEventKind.approved, submitter_id=submitter.id, next_role=None).model_dump(mode="json")

    with patch("app.db.session.SyncSessionLocal", session_factory), \
         patch("app.services.email.send_email") as mock_send:
        result = deliver_routing_event.run(payload)

    assert result["status"] == "sent"
    assert result["recipients"] == 1
    sent = mock_send.call_args.args[0]
    assert sent.to == [submitter.email]


def test_deliver_routing_event_reraises_for_retry(session_factory):
    payload = _event(next_role="Invoice Specialist").model_dump(mode="json")

    with patch("app.db.session.SyncSessionLocal", session_factory), \
         patch("app.services.email.send_email", side_effect=ConnectionError("smtp down")):
        with pytest.raises(ConnectionError):
            deliver_routing_event.run(payload)


def test_deliver_routing_event_drops_after_max_retries(session_factory, monkeypatch):
    payload = _event(next_role="Invoice Specialist").model_dump(mode="json")
    monkeypatch.setattr(deliver_routing_event, "max_retries", 0)

    failing_session = MagicMock(side_effect=RuntimeError("db unavailable"))
    with patch("app.db.session.SyncSessionLocal", failing_session):
        result = deliver_routing_event.run(payload)

    assert result == {"status": "dropped", "reimbursement_id": payload["reimbursement_id"]}
