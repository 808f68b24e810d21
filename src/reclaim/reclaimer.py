"""Reclaimer — closes eligible accounts and returns their rent to the operator.

Per account:
    safety check → account lookup → build close tx → simulate (dry run) | send+confirm

The emergency stop is read fresh before every account and again after it,
so an operator can halt a running batch between two transactions.
Failures are returned as ReclaimResult values, never raised.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence

from loguru import logger
from solders.hash import Hash  # type: ignore[import-untyped]

from src.chain.exceptions import ChainError
from src.chain.instructions import TOKEN_PROGRAM_ID, TOKEN_PROGRAM_IDS, close_account_instruction, lamports_to_sol
from src.chain.rpc_client import SolanaRpcClient
from src.chain.wallet import OperatorWallet
from src.reclaim.ledger import Ledger
from src.reclaim.models import (
    LedgerAction,
    LedgerEntry,
    LedgerStatus,
    ReclaimResult,
    total_reclaimed,
)
from src.reclaim.safety import SafetyGate


class Reclaimer:
    """Executes CloseAccount for one account at a time."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        wallet: OperatorWallet,
        safety: SafetyGate,
        ledger: Ledger,
        *,
        dry_run: bool = True,
    ) -> None:
        self._rpc = rpc
        self._wallet = wallet
        self._safety = safety
        self._ledger = ledger
        self._dry_run = dry_run

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def reclaim_account(self, address: str) -> ReclaimResult:
        try:
            return await self._reclaim_one(address)
        except Exception as e:
            logger.exception(f"[RECLAIM] {address}: unexpected error")
            return self._failed(address, f"Unexpected error: {e}")

    async def reclaim_batch(self, addresses: Sequence[str]) -> list[ReclaimResult]:
        """Strictly sequential. Halts (without marking the rest) once the stop flag is set."""
        mode = "[DRY RUN] " if self._dry_run else ""
        logger.info(f"[RECLAIM] {mode}Reclaiming {len(addresses)} accounts")

        results: list[ReclaimResult] = []
        for address in addresses:
            results.append(await self.reclaim_account(address))

            stop = await asyncio.to_thread(self._safety.is_stopped)
            if stop.stopped:
                remaining = len(addresses) - len(results)
                logger.warning(
                    f"[RECLAIM] Emergency stop activated, halting batch ({remaining} not attempted)"
                )
                break

        successful = sum(1 for r in results if r.success)
        logger.info(
            f"[RECLAIM] {mode}Batch complete: {successful}/{len(addresses)} successful, "
            f"{lamports_to_sol(total_reclaimed(results)):.6f} SOL"
        )
        return results

    # ─── Stages ──────────────────────────────────────────────────────

    async def _reclaim_one(self, address: str) -> ReclaimResult:
        stop = await asyncio.to_thread(self._safety.is_stopped)
        if stop.stopped:
            error = f"Emergency stop is active: {stop.reason}"
            logger.warning(f"[RECLAIM] {address}: {error}")
            self._record(address, LedgerStatus.FAILURE, reason=error)
            return ReclaimResult(
                account=address, success=False, dry_run=self._dry_run, error=error, aborted=True
            )

        try:
            info = await self._rpc.get_account_info(address)
        except ChainError as e:
            return self._failed(address, str(e))

        if info is None:
            return self._failed(address, "Account does not exist")

        lamports = info.lamports
        program_id = info.owner if info.owner in TOKEN_PROGRAM_IDS else TOKEN_PROGRAM_ID
        try:
            ix = close_account_instruction(
                address, self._wallet.pubkey, self._wallet.pubkey, program_id
            )
        except ValueError as e:
            return self._failed(address, f"Invalid account address: {e}")

        if self._dry_run:
            return await self._simulate(address, ix, lamports)
        return await self._submit(address, ix, lamports)

    async def _simulate(self, address: str, ix, lamports: int) -> ReclaimResult:
        # simulateTransaction replaces the blockhash, so no getLatestBlockhash round-trip
        tx = self._wallet.sign_transaction([ix], Hash.default())
        try:
            sim = await self._rpc.simulate_transaction(tx)
        except ChainError as e:
            return self._failed(address, f"Simulation failed: {e}", amount=lamports)

        if not sim.ok:
            return self._failed(
                address, f"Simulation failed: {json.dumps(sim.err, default=str)}", amount=lamports
            )

        logger.info(f"[RECLAIM] [DRY RUN] Would reclaim {lamports_to_sol(lamports)} SOL from {address}")
        self._record(
            address,
            LedgerStatus.SUCCESS,
            amount=lamports,
            reason="[DRY RUN] Simulation successful",
        )
        return ReclaimResult(account=address, success=True, reclaimed_lamports=lamports, dry_run=True)

    async def _submit(self, address: str, ix, lamports: int) -> ReclaimResult:
        try:
            blockhash = await self._rpc.get_latest_blockhash()
        except ChainError as e:
            return self._failed(address, str(e))

        tx = self._wallet.sign_transaction([ix], blockhash)
        try:
            signature = await self._rpc.send_and_confirm_transaction(tx)
        except ChainError as e:
            return self._failed(address, str(e), amount=lamports)

        logger.info(f"[RECLAIM] Reclaimed {lamports_to_sol(lamports)} SOL from {address} ({signature})")
        self._record(address, LedgerStatus.SUCCESS, amount=lamports, signature=signature)
        return ReclaimResult(
            account=address, success=True, reclaimed_lamports=lamports, signature=signature
        )

    # ─── Helpers ─────────────────────────────────────────────────────

    def _failed(self, address: str, error: str, *, amount: int | None = None) -> ReclaimResult:
        logger.warning(f"[RECLAIM] {address}: {error}")
        self._record(address, LedgerStatus.FAILURE, amount=amount, reason=error)
        return ReclaimResult(account=address, success=False, dry_run=self._dry_run, error=error)

    def _record(
        self,
        address: str,
        status: LedgerStatus,
        *,
        amount: int | None = None,
        reason: str | None = None,
        signature: str | None = None,
    ) -> None:
        self._ledger.append(
            LedgerEntry(
                account=address,
                action=LedgerAction.RECLAIM,
                status=status,
                amount=amount,
                reason=reason,
                signature=signature,
                dry_run=self._dry_run,
            )
        )
