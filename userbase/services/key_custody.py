"""
Key Custody Service - custodial posting keys and backup re-issuance.

Only the posting tier is ever custodied. A backup therefore always goes
out as a partial bundle, and every decryption bumps last_used_at.
Decryption and delivery failures propagate to the caller; a backup that
silently did not happen would look like a backup that did.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

from structlog import get_logger

from userbase.config import Settings
from userbase.db.repositories import Store
from userbase.exceptions import (
    ContactNotFoundError,
    CustodialKeyNotFoundError,
    DecryptionError,
    ExternalAccountNotFoundError,
    IdentityNotLinkedError,
    KeyMismatchError,
)
from userbase.models.api import IdentityType, KeyType
from userbase.models.domain import CustodialKeyData, HiveAccountKeys, IdentityData
from userbase.services.credential_vault import CredentialVault
from userbase.services.hive_client import HiveClient
from userbase.services.hive_keys import derive_public_key
from userbase.services.notifications import EmailDispatcher
from userbase.services.sponsorship import resolve_sponsor_username

logger = get_logger(__name__)


class KeyCustodyService:
    """
    Store, inspect, remove and re-issue a user's custodial posting key.

    Usage:
        custody = KeyCustodyService(store, vault, hive, notifier, settings)
        await custody.resend_backup(user_id)
    """

    def __init__(
        self,
        store: Store,
        vault: CredentialVault,
        hive: HiveClient,
        notifier: EmailDispatcher,
        settings: Settings,
        key_deriver: Callable[[str], str] = derive_public_key,
    ) -> None:
        self.store = store
        self.vault = vault
        self.hive = hive
        self.notifier = notifier
        self.settings = settings
        self.key_deriver = key_deriver

    async def _hive_identity(self, user_id: UUID, handle: str | None = None) -> IdentityData:
        if handle:
            identity = await self.store.identities.get_by_handle(IdentityType.HIVE, handle)
            if identity is not None and identity.user_id != user_id:
                identity = None
        else:
            identity = await self.store.identities.get_primary(user_id, IdentityType.HIVE)
        if identity is None or not identity.handle:
            raise IdentityNotLinkedError(user_id, IdentityType.HIVE.value)
        return identity

    async def get_posting_key(self, user_id: UUID) -> CustodialKeyData | None:
        """Stored key metadata, or None when the user has no Hive identity or no key."""
        if not await self.store.identities.has_type(user_id, IdentityType.HIVE):
            return None
        return await self.store.keys.get(user_id)

    async def key_info(self, user_id: UUID) -> CustodialKeyData | None:
        return await self.store.keys.get(user_id)

    async def store_posting_key(
        self, user_id: UUID, posting_key: str, handle: str | None = None
    ) -> CustodialKeyData:
        """
        Take custody of a posting key the user already holds.

        Raises:
            IdentityNotLinkedError: no Hive identity (matching handle) for the user
            InvalidPrivateKeyError: posting_key is not a WIF key
            ExternalAccountNotFoundError: the account is not on chain
            KeyMismatchError: key is not one of the account's posting authorities
        """
        identity = await self._hive_identity(user_id, handle.strip().lower() if handle else None)
        username = identity.handle or ""
        public_key = self.key_deriver(posting_key.strip())

        account = await self.hive.get_account(username)
        if account is None:
            raise ExternalAccountNotFoundError("Hive", username)
        if public_key not in account.posting_key_auths:
            logger.warning("posting_key_mismatch", user_id=str(user_id), hive_username=username)
            raise KeyMismatchError(username)

        secret = self.vault.encrypt(posting_key.strip())
        record = await self.store.keys.upsert(user_id, username, secret, KeyType.USER_PROVIDED)
        await self.store.commit()

        logger.info("posting_key_stored", user_id=str(user_id), hive_username=username)
        return record

    async def delete_posting_key(self, user_id: UUID) -> bool:
        await self._hive_identity(user_id)
        deleted = await self.store.keys.delete(user_id)
        await self.store.commit()
        logger.info("posting_key_deleted", user_id=str(user_id), deleted=deleted)
        return deleted

    async def resend_backup(self, user_id: UUID) -> None:
        """
        Decrypt the custodied posting key and email it as a partial backup.

        Raises:
            CustodialKeyNotFoundError: nothing is custodied for the user
            ContactNotFoundError: the user has no email on file
            DecryptionError: the stored ciphertext does not authenticate
            NotificationError: the email could not be delivered
        """
        record = await self.store.keys.get(user_id)
        if record is None:
            raise CustodialKeyNotFoundError(user_id)

        email = await self.store.users.get_contact_email(user_id)
        if not email:
            raise ContactNotFoundError(user_id)

        try:
            posting = self.vault.decrypt(record.secret)
        except DecryptionError:
            logger.error(
                "backup_decryption_failed",
                user_id=str(user_id),
                hive_username=record.hive_username,
            )
            raise
        keys = HiveAccountKeys.posting_only(posting, self.key_deriver(posting))
        await self.store.keys.touch_last_used(user_id, datetime.now(UTC))
        await self.store.commit()

        identity = await self.store.identities.get_by_handle(
            IdentityType.HIVE, record.hive_username
        )
        sponsor_username = self.settings.default_sponsor_label
        if identity is not None and identity.user_id == user_id and identity.sponsor_user_id:
            sponsor_username = await resolve_sponsor_username(
                self.store, identity.sponsor_user_id, identity, self.settings.default_sponsor_label
            )

        await self.notifier.send_credentials(
            email, record.hive_username, sponsor_username, keys, is_backup=True
        )
        logger.info("key_backup_sent", user_id=str(user_id), hive_username=record.hive_username)
