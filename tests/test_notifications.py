"""Notifications — delivery log, retry of failed emails and Telegram messages."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from app.integrations.telegram_gateway import TelegramError, TelegramGateway
from app.models import db
from app.models.asset import AssetVersion
from app.models.feedback import FeedbackItem
from app.models.notification import Notification
from app.services import notification_service


def _failed_notification(tenant_id, payload=None):
    notification = Notification(
        tenant_id=tenant_id,
        channel="EMAIL",
        recipient="pm@videoagency.com",
        template_key="stage_overdue",
        payload=payload if payload is not None else {"subject": "Overdue", "body": "<p>Overdue</p>"},
        delivery_status="FAILED",
        error_message="Connection refused",
    )
    db.session.add(notification)
    db.session.commit()
    return notification


class FakeTelegram:
    def __init__(self):
        self.messages = []

    def send_message(self, text):
        self.messages.append(text)
        return True


# ═══════════════════════════════════════════════════════════════
# DELIVERY LOG
# ═══════════════════════════════════════════════════════════════

class TestNotificationApi:
    def test_list_newest_first(self, client, owner_headers, project, version):
        url = f"/api/v1/projects/{project['id']}/versions/{version['id']}/notify-client"
        client.post(url, headers=owner_headers)
        client.post(url, headers=owner_headers)

        res = client.get("/api/v1/notifications?limit=1", headers=owner_headers)
        assert res.status_code == 200
        items = res.get_json()
        assert len(items) == 1
        assert items[0]["template_key"] == "version_uploaded"

    def test_retry_failed(self, client, owner, owner_headers):
        notification = _failed_notification(owner["tenant"]["id"])
        res = client.post(f"/api/v1/notifications/{notification.id}/retry", headers=owner_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["delivery_status"] == "SENT"
        assert data["error_message"] is None

    def test_retry_sent_is_rejected(self, client, owner, owner_headers):
        notification = _failed_notification(owner["tenant"]["id"])
        client.post(f"/api/v1/notifications/{notification.id}/retry", headers=owner_headers)
        res = client.post(f"/api/v1/notifications/{notification.id}/retry", headers=owner_headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Only FAILED notifications can be retried"

    def test_retry_without_body(self, client, owner, owner_headers):
        notification = _failed_notification(owner["tenant"]["id"], payload={})
        res = client.post(f"/api/v1/notifications/{notification.id}/retry", headers=owner_headers)
        assert res.status_code == 400

    def test_retry_unknown(self, client, owner_headers):
        assert client.post("/api/v1/notifications/999/retry", headers=owner_headers).status_code == 404

    def test_editor_forbidden(self, client, editor_headers):
        assert client.get("/api/v1/notifications", headers=editor_headers).status_code == 403


class TestOverdueHours:
    def test_rounds_up(self):
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        started = now - timedelta(hours=25, minutes=10)
        assert notification_service.overdue_hours(started, 24, now) == 2

    def test_not_overdue(self):
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert notification_service.overdue_hours(now - timedelta(hours=1), 24, now) == 0
        assert notification_service.overdue_hours(None, 24, now) == 0


# ═══════════════════════════════════════════════════════════════
# TELEGRAM
# ═══════════════════════════════════════════════════════════════

class TestTelegramGateway:
    def test_not_configured_skips(self):
        session = MagicMock()
        assert TelegramGateway(token="", chat_id="", session=session).send_message("hi") is False
        session.post.assert_not_called()

    def test_send(self):
        session = MagicMock()
        session.post.return_value = MagicMock(ok=True, status_code=200, **{"json.return_value": {"ok": True}})
        gateway = TelegramGateway(token="123:abc", chat_id="-100", session=session)

        assert gateway.send_message("New feedback") is True
        url = session.post.call_args.args[0]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert session.post.call_args.kwargs["json"] == {"chat_id": "-100", "text": "New feedback"}

    def test_api_error(self):
        session = MagicMock()
        session.post.return_value = MagicMock(
            ok=False, status_code=400, **{"json.return_value": {"ok": False, "description": "chat not found"}},
        )
        with pytest.raises(TelegramError, match="chat not found"):
            TelegramGateway(token="t", chat_id="c", session=session).send_message("x")

    def test_network_error(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(TelegramError):
            TelegramGateway(token="t", chat_id="c", session=session).send_message("x")


class TestTelegramMessages:
    def test_new_feedback_message(self, client, owner_headers, project, version):
        res = client.post("/api/v1/feedback", json={
            "asset_version_id": version["id"], "text": "x" * 400, "timecode_sec": 75,
        }, headers=owner_headers)
        feedback = db.session.get(FeedbackItem, res.get_json()["id"])
        telegram = FakeTelegram()

        notification_service.notify_new_feedback_telegram(
            feedback=feedback, version=feedback.asset_version, gateway=telegram,
        )
        message = telegram.messages[0]
        assert "Project: Launch Teaser" in message
        assert "Version: v1" in message
        assert "Timecode: 1:15" in message
        assert ("x" * 300 + "...") in message
        assert project["portal_token"] in message

    def test_approval_message(self, version):
        row = db.session.get(AssetVersion, version["id"])
        row.approved_at = datetime(2026, 3, 4, 5, 6, tzinfo=timezone.utc)
        telegram = FakeTelegram()

        notification_service.notify_version_approved_telegram(version=row, gateway=telegram)
        assert "Time: 2026-03-04 05:06 UTC" in telegram.messages[0]
        assert "Version approved by client" in telegram.messages[0]
