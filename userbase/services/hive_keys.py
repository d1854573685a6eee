"""
Hive key handling and posting-authority broadcasts.

Graphene key math and transaction signing come from beem.
"""

import asyncio
import json
import re

from beem import Hive
from beem.transactionbuilder import TransactionBuilder
from beembase.operations import Account_update2
from beemgraphenebase.account import PrivateKey
from structlog import get_logger

from userbase.config import Settings
from userbase.exceptions import ChainBroadcastError, InvalidPrivateKeyError
from userbase.models.domain import ProfileSnapshot
from userbase.observability.metrics import metrics

logger = get_logger(__name__)

PUBLIC_KEY_PREFIX = "STM"

# Uncompressed WIF: version byte 0x80, base58 alphabet
WIF_PATTERN = re.compile(r"^5[HJK][1-9A-HJ-NP-Za-km-z]{49}$")


def is_valid_wif(wif: str) -> bool:
    return bool(WIF_PATTERN.match(wif))


def derive_public_key(wif: str) -> str:
    """
    Derive the STM-prefixed public key for a WIF private key.

    Raises:
        InvalidPrivateKeyError: not a WIF string, or checksum fails
    """
    if not is_valid_wif(wif):
        raise InvalidPrivateKeyError()

    try:
        return str(PrivateKey(wif, prefix=PUBLIC_KEY_PREFIX).pubkey)
    except (AssertionError, ValueError) as exc:
        raise InvalidPrivateKeyError() from exc


class HiveProfilePublisher:
    """
    Writes posting_json_metadata for an account with its posting key.

    Broadcasting is blocking inside beem, so it runs on a worker thread
    under an explicit timeout.
    """

    def __init__(self, settings: Settings) -> None:
        self._nodes = settings.hive_node_list
        self._timeout = settings.hive_rpc_timeout_seconds * 3

    def _broadcast(self, account: str, posting_wif: str, posting_json_metadata: str) -> None:
        hive = Hive(node=self._nodes, keys=[posting_wif], num_retries=2)
        tx = TransactionBuilder(blockchain_instance=hive)
        tx.appendOps(
            Account_update2(
                **{
                    "account": account,
                    "json_metadata": "",
                    "posting_json_metadata": posting_json_metadata,
                    "extensions": [],
                    "prefix": hive.prefix,
                }
            )
        )
        tx.appendWif(posting_wif)
        tx.sign()
        tx.broadcast()

    async def publish(self, account: str, posting_wif: str, snapshot: ProfileSnapshot) -> None:
        """
        Push a public profile into the account's posting metadata.

        Raises:
            ChainBroadcastError: signing, broadcast or timeout failure
        """
        metadata = json.dumps(snapshot.as_posting_metadata())
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._broadcast, account, posting_wif, metadata),
                timeout=self._timeout,
            )
        except Exception as exc:
            metrics.record_external_call("hive_broadcast", success=False)
            logger.warning("hive_profile_broadcast_failed", account=account, error=str(exc))
            raise ChainBroadcastError("account_update2", str(exc) or type(exc).__name__) from exc

        metrics.record_external_call("hive_broadcast", success=True)
        logger.info("hive_profile_broadcast", account=account)
