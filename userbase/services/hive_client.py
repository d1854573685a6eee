"""
Hive Chain Client and Verifier.

JSON-RPC over httpx against a list of condenser API nodes. Every call has
an explicit timeout; transport failures are retried with backoff, moving
to the next node on each attempt. When every attempt fails the call raises
ChainRPCError.

The ChainVerifier confirms that a submitted transaction created the
expected account: the transaction must be found (polled a bounded number
of times while it propagates), it must carry an account_create or
create_claimed_account operation naming the account, and the account
must then be readable.
"""

import asyncio
import itertools
import re
from typing import Any

import httpx
from structlog import get_logger

from userbase.config import Settings
from userbase.exceptions import ChainRPCError, InvalidAccountNameError
from userbase.models.domain import ChainVerification, HiveAccount
from userbase.observability.metrics import metrics

logger = get_logger(__name__)

ACCOUNT_CREATE_OPS = frozenset({"account_create", "create_claimed_account"})

_SEGMENT_PATTERN = re.compile(r"^[a-z][a-z0-9-]*[a-z0-9]$")


def account_name_problem(name: str) -> str | None:
    """Describe why a Hive account name is invalid, or None when it is valid."""
    if not 3 <= len(name) <= 16:
        return "must be 3-16 characters"
    for segment in name.split("."):
        if len(segment) < 3:
            return "each dot-separated segment must be at least 3 characters"
        if not _SEGMENT_PATTERN.match(segment):
            return (
                "segments must start with a letter, end with a letter or digit, "
                "and contain only a-z, 0-9 and hyphens"
            )
        if "--" in segment:
            return "cannot contain consecutive hyphens"
    return None


def ensure_valid_account_name(name: str) -> str:
    problem = account_name_problem(name)
    if problem is not None:
        raise InvalidAccountNameError(name, problem)
    return name


def _parse_account(raw: dict[str, Any]) -> HiveAccount:
    posting = raw.get("posting") or {}
    return HiveAccount(
        name=raw["name"],
        posting_key_auths=tuple(auth[0] for auth in posting.get("key_auths") or []),
        posting_json_metadata=raw.get("posting_json_metadata") or "",
    )


class HiveClient:
    """Condenser API client with node failover."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._nodes = settings.hive_node_list
        self._timeout = settings.hive_rpc_timeout_seconds
        self._retries = settings.hive_rpc_retries
        self._backoff = settings.hive_rpc_backoff_seconds
        self._transport = transport
        self._ids = itertools.count(1)

    async def call(self, method: str, params: list[Any]) -> Any:
        """
        Execute one JSON-RPC call.

        A JSON-RPC error object is returned to the caller as ChainRPCError
        without retrying; only transport and 5xx failures are retried.
        """
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        last_error = "no nodes configured"

        for attempt in range(1 + self._retries):
            node = self._nodes[attempt % len(self._nodes)]
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.post(node, json=payload)
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                last_error = f"{node}: {exc}"
                if attempt < self._retries:
                    delay = self._backoff * (2**attempt)
                    logger.warning(
                        "hive_rpc_retry",
                        method=method,
                        node=node,
                        attempt=attempt + 1,
                        error=str(exc),
                        delay_seconds=delay,
                    )
                    await asyncio.sleep(delay)
                continue

            metrics.record_external_call("hive_rpc", success=True)
            if body.get("error"):
                error = body["error"]
                message = str(error)
                if isinstance(error, dict):
                    message = error.get("message", message)
                raise ChainRPCError(method, message)
            return body.get("result")

        metrics.record_external_call("hive_rpc", success=False)
        logger.error("hive_rpc_failed", method=method, error=last_error)
        raise ChainRPCError(method, last_error)

    async def get_accounts(self, names: list[str]) -> list[HiveAccount]:
        result = await self.call("condenser_api.get_accounts", [names])
        return [_parse_account(raw) for raw in result or []]

    async def get_account(self, name: str) -> HiveAccount | None:
        accounts = await self.get_accounts([name])
        return accounts[0] if accounts else None

    async def account_exists(self, name: str) -> bool:
        return await self.get_account(name) is not None

    async def get_transaction(self, transaction_id: str) -> dict[str, Any] | None:
        """Fetch a transaction; None while the node does not know it yet."""
        try:
            return await self.call("condenser_api.get_transaction", [transaction_id])
        except ChainRPCError as exc:
            if "unknown transaction" in exc.problem.lower():
                return None
            raise


class ChainVerifier:
    """
    Confirms an account-creation transaction on chain.

    Usage:
        verifier = ChainVerifier(client, attempts=5, delay_seconds=2.0)
        result = await verifier.verify_account_creation(tx_id, "bobskates")
    """

    def __init__(self, client: HiveClient, attempts: int, delay_seconds: float) -> None:
        self.client = client
        self.attempts = max(1, attempts)
        self.delay_seconds = delay_seconds

    async def _find_transaction(self, transaction_id: str) -> dict[str, Any] | None:
        for attempt in range(self.attempts):
            tx = await self.client.get_transaction(transaction_id)
            if tx and tx.get("block_num"):
                return tx
            logger.info(
                "hive_transaction_not_found",
                transaction_id=transaction_id,
                attempt=attempt + 1,
                attempts=self.attempts,
            )
            if attempt < self.attempts - 1:
                await asyncio.sleep(self.delay_seconds)
        return None

    @staticmethod
    def _creates_account(tx: dict[str, Any], username: str) -> bool:
        for op in tx.get("operations") or []:
            if isinstance(op, list) and len(op) == 2:
                name, body = op
            elif isinstance(op, dict):
                name, body = op.get("type", "").removesuffix("_operation"), op.get("value", {})
            else:
                continue
            if name in ACCOUNT_CREATE_OPS and body.get("new_account_name") == username:
                return True
        return False

    async def verify_account_creation(
        self, transaction_id: str, username: str
    ) -> ChainVerification:
        """
        Check that transaction_id created username.

        Negative results come back as ChainVerification(success=False);
        unreachable nodes raise ChainRPCError.
        """
        tx = await self._find_transaction(transaction_id)
        if tx is None:
            return ChainVerification(
                success=False,
                transaction_id=transaction_id,
                username=username,
                error="Transaction not found on blockchain",
            )

        block_number = int(tx["block_num"])
        if not self._creates_account(tx, username):
            return ChainVerification(
                success=False,
                transaction_id=transaction_id,
                username=username,
                block_number=block_number,
                error="Transaction does not create the expected account",
            )

        if not await self.client.account_exists(username):
            return ChainVerification(
                success=False,
                transaction_id=transaction_id,
                username=username,
                block_number=block_number,
                error="Account not found after transaction confirmation",
            )

        return ChainVerification(
            success=True,
            transaction_id=transaction_id,
            username=username,
            block_number=block_number,
        )
