"""Solana JSON-RPC client — history replay, account lookups, simulate/send/confirm.

Every call goes through ``_call`` which raises ``RpcError`` on transport
failures and JSON-RPC error responses. Only HTTP 429 is retried; anything
else is surfaced to the caller, which decides whether to skip the item
(scanner, auditor) or record a failed result (reclaimer).
"""

from __future__ import annotations

import asyncio
import base64
from typing import Any

import httpx
from loguru import logger
from solders.hash import Hash  # type: ignore[import-untyped]
from solders.transaction import Transaction  # type: ignore[import-untyped]

from src.chain.exceptions import RpcError, TransactionFailedError
from src.chain.instructions import TOKEN_PROGRAM_IDS
from src.chain.models import (
    AccountInfo,
    ParsedInstruction,
    ParsedTransaction,
    SignatureInfo,
    SimulationResult,
    TokenAccountInfo,
)

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]

# Confirmation polling
CONFIRM_POLL_INTERVAL = 2.0  # seconds
CONFIRM_TIMEOUT = 60  # seconds
RESEND_INTERVAL = 4.0  # seconds


class SolanaRpcClient:
    """Async HTTP client for a Solana JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 15.0,
        commitment: str = "confirmed",
        confirm_timeout: int = CONFIRM_TIMEOUT,
    ) -> None:
        if not rpc_url:
            raise ValueError("RPC URL is empty")
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._confirm_timeout = confirm_timeout
        self._http = httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def close(self) -> None:
        await self._http.aclose()

    # ─── Transport ───────────────────────────────────────────────────

    async def _call(self, method: str, params: list[Any]) -> Any:
        """POST a JSON-RPC request and return ``result``."""
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await self._http.post(self._rpc_url, json=payload)
            except httpx.RequestError as e:
                raise RpcError(method, f"{type(e).__name__}: {e}") from e

            if resp.status_code == 429 and attempt < MAX_RETRIES:
                delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                logger.debug(f"[RPC] {method} rate limited, waiting {delay}s")
                await asyncio.sleep(delay)
                continue
            if resp.status_code != 200:
                raise RpcError(method, f"HTTP {resp.status_code}")

            try:
                data = resp.json()
            except ValueError as e:
                raise RpcError(method, "response is not JSON") from e

            if "error" in data:
                error = data["error"] or {}
                raise RpcError(
                    method,
                    str(error.get("message", error)),
                    code=error.get("code"),
                )
            return data.get("result")

        raise RpcError(method, "rate limited after retries", code=429)

    # ─── History ─────────────────────────────────────────────────────

    async def get_signatures_for_address(
        self, address: str, *, limit: int = 1000, before: str | None = None
    ) -> list[SignatureInfo]:
        """Newest-first signatures referencing ``address`` (max 1000 per page)."""
        options: dict[str, Any] = {"limit": min(limit, 1000), "commitment": self._commitment}
        if before:
            options["before"] = before

        result = await self._call("getSignaturesForAddress", [address, options]) or []
        return [
            SignatureInfo(
                signature=sig.get("signature", ""),
                slot=sig.get("slot", 0),
                block_time=sig.get("blockTime"),
                err=sig.get("err"),
            )
            for sig in result
        ]

    async def get_parsed_transaction(self, signature: str) -> ParsedTransaction | None:
        """Fetch a transaction with jsonParsed instructions. None if unknown."""
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
        )
        if not result:
            return None
        return _parse_transaction(signature, result)

    # ─── Accounts ────────────────────────────────────────────────────

    async def get_account_info(self, address: str) -> AccountInfo | None:
        """Fetch account with jsonParsed data. None if the account doesn't exist."""
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "jsonParsed", "commitment": self._commitment}],
        )
        value = (result or {}).get("value")
        if not value:
            return None
        return AccountInfo(
            address=address,
            lamports=value.get("lamports", 0),
            owner=value.get("owner", ""),
            executable=value.get("executable", False),
            data=value.get("data"),
        )

    async def get_token_account(self, address: str) -> TokenAccountInfo | None:
        """Fetch SPL token account state. None if absent or not a token account."""
        info = await self.get_account_info(address)
        if info is None:
            return None
        return parse_token_account(info)

    # ─── Transactions ────────────────────────────────────────────────

    async def get_latest_blockhash(self) -> Hash:
        result = await self._call("getLatestBlockhash", [{"commitment": "finalized"}])
        try:
            return Hash.from_string(result["value"]["blockhash"])
        except (KeyError, TypeError, ValueError) as e:
            raise RpcError("getLatestBlockhash", f"malformed response: {e}") from e

    async def simulate_transaction(self, tx: Transaction) -> SimulationResult:
        """Simulate without committing. Signature verification is skipped."""
        result = await self._call(
            "simulateTransaction",
            [
                _encode_tx(tx),
                {
                    "encoding": "base64",
                    "sigVerify": False,
                    "replaceRecentBlockhash": True,
                    "commitment": self._commitment,
                },
            ],
        )
        value = (result or {}).get("value") or {}
        return SimulationResult(
            err=value.get("err"),
            logs=value.get("logs") or [],
            units_consumed=value.get("unitsConsumed"),
        )

    async def send_transaction(self, tx: Transaction) -> str:
        """Submit a signed transaction with preflight. Returns the signature."""
        result = await self._call(
            "sendTransaction",
            [
                _encode_tx(tx),
                {"encoding": "base64", "preflightCommitment": self._commitment, "maxRetries": 5},
            ],
        )
        if not result:
            raise RpcError("sendTransaction", "empty signature in response")
        return str(result)

    async def send_and_confirm_transaction(self, tx: Transaction) -> str:
        """Send, then poll getSignatureStatuses until confirmed.

        Raises TransactionFailedError on rejection, on-chain error or timeout.
        """
        try:
            signature = await self.send_transaction(tx)
        except RpcError as e:
            raise TransactionFailedError(f"Send failed: {e}") from e

        logger.debug(f"[RPC] TX sent: {signature}")
        await self._wait_for_confirmation(signature, tx)
        return signature

    async def _wait_for_confirmation(self, signature: str, tx: Transaction) -> None:
        """Poll status with periodic re-sends (same signature, idempotent)."""
        elapsed = 0.0
        last_resend = 0.0
        while elapsed < self._confirm_timeout:
            try:
                result = await self._call(
                    "getSignatureStatuses",
                    [[signature], {"searchTransactionHistory": True}],
                )
                statuses = (result or {}).get("value") or []
                status = statuses[0] if statuses else None
                if status is not None:
                    if status.get("err"):
                        raise TransactionFailedError(
                            f"Transaction failed on-chain: {status['err']}", signature
                        )
                    if status.get("confirmationStatus") in ("confirmed", "finalized"):
                        logger.debug(f"[RPC] TX {signature[:16]} confirmed in {elapsed:.1f}s")
                        return
            except RpcError as e:
                logger.debug(f"[RPC] Status poll failed for {signature[:16]}: {e}")

            if elapsed - last_resend >= RESEND_INTERVAL:
                try:
                    await self.send_transaction(tx)
                except RpcError:
                    pass  # Already processed or blockhash expired; status poll decides
                last_resend = elapsed

            await asyncio.sleep(CONFIRM_POLL_INTERVAL)
            elapsed += CONFIRM_POLL_INTERVAL

        raise TransactionFailedError(
            f"Confirmation timeout ({self._confirm_timeout}s)", signature
        )


def _encode_tx(tx: Transaction) -> str:
    return base64.b64encode(bytes(tx)).decode("ascii")


def _parse_instruction(ix: dict) -> ParsedInstruction:
    return ParsedInstruction(
        program_id=ix.get("programId", ""),
        program=ix.get("program", ""),
        parsed=ix.get("parsed"),
        accounts=[a for a in ix.get("accounts", []) if isinstance(a, str)],
        data=ix.get("data", "") or "",
    )


def _parse_transaction(signature: str, data: dict) -> ParsedTransaction:
    """Flatten a jsonParsed getTransaction result."""
    tx = data.get("transaction") or {}
    message = tx.get("message") or {}
    meta = data.get("meta") or {}

    account_keys: list[str] = []
    for key in message.get("accountKeys", []):
        # jsonParsed returns objects, raw encodings return strings
        account_keys.append(key.get("pubkey", "") if isinstance(key, dict) else str(key))

    inner: list[ParsedInstruction] = []
    for group in meta.get("innerInstructions") or []:
        inner.extend(_parse_instruction(ix) for ix in group.get("instructions", []))

    return ParsedTransaction(
        signature=signature,
        slot=data.get("slot", 0),
        block_time=data.get("blockTime"),
        account_keys=account_keys,
        instructions=[_parse_instruction(ix) for ix in message.get("instructions", [])],
        inner_instructions=inner,
        pre_balances=meta.get("preBalances") or [],
        post_balances=meta.get("postBalances") or [],
        fee=meta.get("fee", 0),
        err=meta.get("err"),
        log_messages=meta.get("logMessages") or [],
    )


def parse_token_account(info: AccountInfo) -> TokenAccountInfo | None:
    """Interpret jsonParsed account data as an SPL token account."""
    if info.owner not in TOKEN_PROGRAM_IDS:
        return None
    parsed = info.parsed
    if not parsed or parsed.get("type") != "account":
        return None

    fields = parsed.get("info") or {}
    token_amount = fields.get("tokenAmount") or {}
    try:
        amount = int(token_amount.get("amount", "0"))
    except (TypeError, ValueError):
        return None

    return TokenAccountInfo(
        address=info.address,
        program_id=info.owner,
        mint=fields.get("mint", ""),
        owner=fields.get("owner", ""),
        amount=amount,
        decimals=int(token_amount.get("decimals", 0) or 0),
        close_authority=fields.get("closeAuthority"),
        state=fields.get("state", "initialized"),
        is_native=bool(fields.get("isNative", False)),
        lamports=info.lamports,
    )
