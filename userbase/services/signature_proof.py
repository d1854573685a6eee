"""
Signature Proof Protocol.

Stateless verification that the holder of an external identity signed a
link challenge. For a Farcaster id the expected signer is the custody
address reported by the directory; for a wallet it is the wallet itself.
The message text is checked before any signature recovery so a stale or
foreign challenge is rejected as a format error.
"""

import re
import secrets
from datetime import UTC, datetime
from uuid import UUID

from eth_account import Account
from eth_account.messages import encode_defunct
from structlog import get_logger

from userbase.exceptions import (
    ExternalAccountNotFoundError,
    InvalidMessageFormatError,
    InvalidSignatureError,
    MissingCustodyAddressError,
    SignatureMismatchError,
    ValidationError,
)
from userbase.models.domain import DirectoryProfile
from userbase.observability.metrics import metrics
from userbase.services.directory_client import DirectoryClient

logger = get_logger(__name__)

FID_PATTERN = re.compile(r"^\d+$")


def build_link_message(
    preamble: str,
    user_id: UUID,
    fid: str,
    username: str,
    nonce: str | None = None,
    issued_at: datetime | None = None,
) -> str:
    """Canonical challenge a Farcaster custody wallet signs to link an account."""
    nonce = nonce or secrets.token_hex(16)
    issued = (issued_at or datetime.now(UTC)).isoformat()
    return "\n".join(
        [
            preamble,
            "",
            f"User ID: {user_id}",
            f"Farcaster: @{username} (FID: {fid})",
            f"Nonce: {nonce}",
            f"Issued at: {issued}",
            "",
            "If you did not request this, you can ignore this message.",
        ]
    )


def recover_signer(message: str, signature: str) -> str:
    """Lower-cased address that produced an EIP-191 personal_sign signature."""
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as exc:
        raise InvalidSignatureError(str(exc) or type(exc).__name__) from exc
    return recovered.lower()


class SignatureProofVerifier:
    """
    Verifies signed link challenges.

    Usage:
        verifier = SignatureProofVerifier(directory, settings.link_message_preamble)
        profile = await verifier.verify_social(fid, message, signature)
    """

    def __init__(self, directory: DirectoryClient, preamble: str) -> None:
        self.directory = directory
        self.preamble = preamble

    def check_social_message(self, message: str, fid: str) -> None:
        if self.preamble not in message:
            raise InvalidMessageFormatError("missing link preamble")
        if not re.search(rf"FID: {re.escape(fid)}(?!\d)", message):
            raise InvalidMessageFormatError(f"message does not reference FID {fid}")

    async def resolve_custody(self, fid: str) -> DirectoryProfile:
        if not FID_PATTERN.match(fid):
            raise ValidationError("Invalid FID format")

        profile = await self.directory.get_profile(fid)
        if profile is None:
            raise ExternalAccountNotFoundError("Farcaster", fid)
        if not profile.custody_address:
            logger.warning("farcaster_custody_missing", fid=fid)
            raise MissingCustodyAddressError(fid)
        return profile

    async def verify_social(self, fid: str, message: str, signature: str) -> DirectoryProfile:
        """
        Prove the caller controls fid's custody wallet.

        Raises:
            ValidationError: fid is not numeric
            ExternalAccountNotFoundError: directory has no such fid
            MissingCustodyAddressError: the fid has no custody address
            InvalidMessageFormatError: challenge text does not reference fid
            InvalidSignatureError: signature cannot be recovered
            SignatureMismatchError: signer is not the custody address
        """
        profile = await self.resolve_custody(fid)
        try:
            self.check_social_message(message, fid)
            recovered = recover_signer(message, signature)
        except (InvalidMessageFormatError, InvalidSignatureError) as exc:
            metrics.record_signature_proof(exc.reason)
            raise

        custody = profile.custody_address or ""
        if recovered != custody.lower():
            metrics.record_signature_proof("signature_mismatch")
            logger.warning(
                "farcaster_signature_mismatch",
                fid=fid,
                custody_address=custody,
                recovered_address=recovered,
            )
            raise SignatureMismatchError(custody, recovered)

        metrics.record_signature_proof("verified")
        return profile

    def verify_wallet(self, address: str, message: str, signature: str) -> str:
        """
        Prove the caller controls an EVM address.

        The message must name the address and carry a nonce.
        """
        address = address.lower()
        if address not in message.lower() or "Nonce:" not in message:
            metrics.record_signature_proof("invalid_message_format")
            raise InvalidMessageFormatError("message does not reference the wallet address")

        try:
            recovered = recover_signer(message, signature)
        except InvalidSignatureError:
            metrics.record_signature_proof("invalid_signature")
            raise

        if recovered != address:
            metrics.record_signature_proof("signature_mismatch")
            raise SignatureMismatchError(address, recovered)

        metrics.record_signature_proof("verified")
        return address
