"""
Notification Dispatcher - credential emails through Resend.

The Resend SDK is synchronous, so each send runs on a worker thread under
an explicit timeout. Provider errors are retried a bounded number of times.
A timeout is not retried: the abandoned thread may still deliver the
message, and a second attempt would mail the credentials twice. Exhaustion
raises NotificationError; whether that fails the caller is the caller's
decision.
"""

import asyncio

import resend
from structlog import get_logger

from userbase.config import Settings
from userbase.exceptions import NotificationError
from userbase.models.domain import HiveAccountKeys
from userbase.observability.metrics import metrics
from userbase.services.email_templates import CredentialEmail, render_credential_email

logger = get_logger(__name__)

RETRY_DELAYS = [1.0, 3.0]


def _mask(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"


class EmailDispatcher:
    """Sends credential bundles to a recipient's contact address."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.resend_api_key
        self._sender = settings.email_from
        self._base_url = settings.app_base_url.rstrip("/")
        self._timeout = settings.email_timeout_seconds
        self._retries = settings.email_retries
        resend.api_key = self._api_key

    def _send(self, recipient: str, email: CredentialEmail) -> None:
        resend.Emails.send(
            {
                "from": self._sender,
                "to": [recipient],
                "subject": email.subject,
                "html": email.html,
                "text": email.text,
                "attachments": [
                    {"filename": email.attachment_name, "content": list(email.attachment)}
                ],
            }
        )

    async def send_credentials(
        self,
        recipient: str,
        username: str,
        sponsor_username: str,
        keys: HiveAccountKeys,
        is_backup: bool = False,
    ) -> None:
        """
        Deliver a credential bundle.

        Raises:
            NotificationError: not configured, or every attempt failed
        """
        if not self._api_key:
            metrics.record_external_call("resend", success=False)
            raise NotificationError(_mask(recipient), "email provider not configured")

        email = render_credential_email(
            username, sponsor_username, keys, is_backup=is_backup, base_url=self._base_url
        )
        last_error = ""

        for attempt in range(1 + self._retries):
            try:
                await asyncio.wait_for(
                    asyncio.to_thread(self._send, recipient, email), timeout=self._timeout
                )
            except TimeoutError:
                last_error = f"delivery unconfirmed after {self._timeout}s"
                break
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                if attempt < self._retries:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.warning(
                        "credential_email_retry",
                        recipient=_mask(recipient),
                        attempt=attempt + 1,
                        error=last_error,
                        delay_seconds=delay,
                    )
                    await asyncio.sleep(delay)
                continue

            metrics.record_external_call("resend", success=True)
            logger.info(
                "credential_email_sent",
                recipient=_mask(recipient),
                hive_username=username,
                is_backup=is_backup,
                partial=keys.is_partial,
            )
            return

        metrics.record_external_call("resend", success=False)
        logger.error(
            "credential_email_failed",
            recipient=_mask(recipient),
            hive_username=username,
            error=last_error,
        )
        raise NotificationError(_mask(recipient), last_error)
