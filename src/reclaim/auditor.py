"""Auditor — decides which sponsored accounts are safe to close.

eligible = is_empty AND is_inactive AND is_closeable AND is_not_whitelisted

Every failure is converted into an AuditResult at the account boundary;
one bad account never aborts the batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from loguru import logger

from src.chain.exceptions import RpcError
from src.chain.rpc_client import SolanaRpcClient, parse_token_account
from src.reclaim.ledger import Ledger
from src.reclaim.models import (
    AuditResult,
    LedgerAction,
    LedgerEntry,
    LedgerStatus,
    SponsoredAccount,
    now_ms,
)
from src.reclaim.safety import SafetyGate

MS_PER_DAY = 86_400_000


class Auditor:
    """Eligibility checks for reclaim candidates."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        safety: SafetyGate,
        ledger: Ledger,
        *,
        inactivity_days: int = 30,
        no_history_is_inactive: bool = True,
        concurrency: int = 1,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._rpc = rpc
        self._safety = safety
        self._ledger = ledger
        self._inactivity_days = inactivity_days
        self._no_history_is_inactive = no_history_is_inactive
        self._concurrency = max(concurrency, 1)
        self._clock = clock

    async def audit(self, address: str, owner: str | None = None) -> AuditResult:
        """Audit one account. Never raises."""
        try:
            return await self._evaluate(address, owner)
        except Exception as e:
            logger.warning(f"[AUDIT] Failed to audit {address}: {e}")
            return AuditResult.errored(address, str(e))

    async def audit_batch(self, accounts: Sequence[SponsoredAccount]) -> list[AuditResult]:
        """Audit in input order; one ledger entry per account."""
        logger.info(f"[AUDIT] Auditing {len(accounts)} accounts")

        if self._concurrency > 1:
            sem = asyncio.Semaphore(self._concurrency)

            async def _bounded(acc: SponsoredAccount) -> AuditResult:
                async with sem:
                    return await self.audit(acc.address, acc.owner or None)

            results = list(await asyncio.gather(*(_bounded(a) for a in accounts)))
        else:
            results = [await self.audit(a.address, a.owner or None) for a in accounts]

        for result in results:
            self._ledger.append(
                LedgerEntry(
                    account=result.account,
                    action=LedgerAction.AUDIT,
                    status=LedgerStatus.SUCCESS if result.eligible else LedgerStatus.SKIPPED,
                    reason=", ".join(result.reasons),
                )
            )

        eligible = sum(1 for r in results if r.eligible)
        logger.info(f"[AUDIT] Audit complete: {eligible}/{len(accounts)} eligible for reclaim")
        return results

    async def _evaluate(self, address: str, owner: str | None) -> AuditResult:
        reasons: list[str] = []

        info = await self._rpc.get_account_info(address)
        token = parse_token_account(info) if info is not None else None

        # Fall back to the on-chain token owner when the caller didn't know it
        whitelisted = await asyncio.to_thread(
            self._safety.is_whitelisted, address, owner or (token.owner if token else None)
        )
        is_not_whitelisted = not whitelisted
        if whitelisted:
            reasons.append("Account is whitelisted")

        if info is None:
            reasons.append("Account does not exist")
            return AuditResult(
                account=address,
                eligible=False,
                is_empty=False,
                is_inactive=False,
                is_closeable=False,
                is_not_whitelisted=is_not_whitelisted,
                last_activity=None,
                balance=0,
                reasons=tuple(reasons),
            )

        if token is not None:
            balance = token.amount
            is_empty = balance == 0
            if not is_empty:
                reasons.append(f"Account has balance: {balance}")
        else:
            balance = info.lamports
            is_empty = balance <= 0
            if not is_empty:
                reasons.append(f"Account holds {balance} lamports")

        is_inactive, last_activity = await self._check_inactivity(address, reasons)

        # The operator can always close a token account it funded
        is_closeable = token is not None or is_empty
        if not is_closeable:
            reasons.append("Account cannot be closed by operator")

        eligible = is_empty and is_inactive and is_closeable and is_not_whitelisted
        if eligible:
            reasons.append("Eligible for reclaim")

        return AuditResult(
            account=address,
            eligible=eligible,
            is_empty=is_empty,
            is_inactive=is_inactive,
            is_closeable=is_closeable,
            is_not_whitelisted=is_not_whitelisted,
            last_activity=last_activity,
            balance=balance,
            reasons=tuple(reasons),
        )

    async def _check_inactivity(self, address: str, reasons: list[str]) -> tuple[bool, int | None]:
        """(is_inactive, last_activity_ms) from the newest signature."""
        try:
            signatures = await self._rpc.get_signatures_for_address(address, limit=1)
        except RpcError as e:
            logger.warning(f"[AUDIT] Activity check failed for {address}: {e}")
            reasons.append("Activity check failed")
            return False, None

        if not signatures:
            if not self._no_history_is_inactive:
                reasons.append("No activity history")
            return self._no_history_is_inactive, None

        block_time = signatures[0].block_time
        if block_time is None:
            reasons.append("Last activity time unknown")
            return False, None

        last_activity = block_time * 1000
        days = (self._clock() - last_activity) // MS_PER_DAY
        if days >= self._inactivity_days:
            return True, last_activity

        reasons.append(f"Account active {days} days ago (threshold: {self._inactivity_days})")
        return False, last_activity
