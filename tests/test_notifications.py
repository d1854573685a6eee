"""
Tests for the credential email dispatcher.

The Resend SDK call is patched; retry delays are zeroed.
"""

import asyncio
import time
from unittest.mock import MagicMock

import pytest

from userbase.config import Settings
from userbase.exceptions import NotificationError
from userbase.models.domain import HiveAccountKeys
from userbase.services import notifications
from userbase.services.notifications import EmailDispatcher


@pytest.fixture
def email_settings(test_settings: Settings) -> Settings:
    return test_settings.model_copy(update={"resend_api_key": "re_test", "email_retries": 2})


@pytest.fixture
def send(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    mock = MagicMock(return_value={"id": "email-1"})
    monkeypatch.setattr(notifications.resend.Emails, "send", mock)
    monkeypatch.setattr(notifications, "RETRY_DELAYS", [0.0])
    return mock


class TestSendCredentials:
    @pytest.mark.asyncio
    async def test_sends_bundle_with_attachment(
        self, email_settings: Settings, send: MagicMock, generated_keys: HiveAccountKeys
    ):
        await EmailDispatcher(email_settings).send_credentials(
            "bob@example.com", "bobskates", "alice", generated_keys
        )

        params = send.call_args.args[0]
        assert params["to"] == ["bob@example.com"]
        assert params["from"] == email_settings.email_from
        assert params["attachments"][0]["filename"] == "hive-keys-bobskates.json"
        assert "@alice" in params["text"]

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(
        self, email_settings: Settings, send: MagicMock, generated_keys: HiveAccountKeys
    ):
        send.side_effect = [RuntimeError("503"), {"id": "email-1"}]

        await EmailDispatcher(email_settings).send_credentials(
            "bob@example.com", "bobskates", "alice", generated_keys
        )

        assert send.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(
        self, email_settings: Settings, send: MagicMock, generated_keys: HiveAccountKeys
    ):
        send.side_effect = RuntimeError("provider down")

        with pytest.raises(NotificationError) as exc_info:
            await EmailDispatcher(email_settings).send_credentials(
                "bob@example.com", "bobskates", "alice", generated_keys
            )

        assert send.call_count == 3
        assert exc_info.value.problem == "provider down"
        assert exc_info.value.recipient == "bo***@example.com"

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(
        self, email_settings: Settings, send: MagicMock, generated_keys: HiveAccountKeys
    ):
        def slow_send(params: dict) -> dict:
            time.sleep(0.3)
            return {"id": "email-1"}

        send.side_effect = slow_send
        dispatcher = EmailDispatcher(
            email_settings.model_copy(update={"email_timeout_seconds": 0.1, "email_retries": 1})
        )

        with pytest.raises(NotificationError, match="unconfirmed"):
            await dispatcher.send_credentials(
                "bob@example.com", "bobskates", "alice", generated_keys
            )
        await asyncio.sleep(0.4)

        assert send.call_count == 1

    @pytest.mark.asyncio
    async def test_not_configured(
        self, test_settings: Settings, send: MagicMock, generated_keys: HiveAccountKeys
    ):
        dispatcher = EmailDispatcher(test_settings.model_copy(update={"resend_api_key": ""}))

        with pytest.raises(NotificationError, match="not configured"):
            await dispatcher.send_credentials(
                "bob@example.com", "bobskates", "alice", generated_keys
            )

        send.assert_not_called()
