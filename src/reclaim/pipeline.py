"""ReclaimPipeline — the facade the CLI, scheduler and HTTP API talk to.

Composes Scanner → Auditor → Reclaimer with one shared SafetyGate and
Ledger. Runs that touch the chain hold an asyncio lock; an overlapping
trigger gets PipelineBusyError instead of racing the running one.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from config.settings import Settings
from src.chain.exceptions import ChainError
from src.chain.instructions import is_valid_pubkey, lamports_to_sol
from src.chain.rpc_client import SolanaRpcClient
from src.chain.wallet import OperatorWallet
from src.reclaim.alerts import ReclaimAlerter
from src.reclaim.auditor import Auditor
from src.reclaim.exceptions import ConfigurationError, PipelineBusyError, PipelineError
from src.reclaim.ledger import Ledger
from src.reclaim.models import (
    AuditResult,
    EmergencyStopState,
    LedgerAction,
    LedgerEntry,
    LedgerStatus,
    MetricsSnapshot,
    ReclaimResult,
    SponsoredAccount,
    WhitelistDocument,
    now_ms,
    total_reclaimed,
)
from src.reclaim.reclaimer import Reclaimer
from src.reclaim.safety import SafetyGate
from src.reclaim.scanner import Scanner
from src.reclaim.sponsorship import SponsorshipClassifier


@dataclass(frozen=True)
class ScanReport:
    accounts: list[SponsoredAccount]
    timestamp: int = field(default_factory=now_ms)

    @property
    def accounts_found(self) -> int:
        return len(self.accounts)

    @property
    def total_rent_locked(self) -> int:
        return sum(a.rent_lamports for a in self.accounts)

    @property
    def confident_accounts(self) -> list[SponsoredAccount]:
        """Accounts matched by an explicit sponsorship detector."""
        return [a for a in self.accounts if a.sponsor_confident]

    @property
    def confident_rent_locked(self) -> int:
        return sum(a.rent_lamports for a in self.confident_accounts)

    @property
    def other_accounts(self) -> int:
        return self.accounts_found - len(self.confident_accounts)

    @property
    def other_rent_locked(self) -> int:
        return self.total_rent_locked - self.confident_rent_locked

    def to_dict(self) -> dict[str, Any]:
        return {
            "accountsFound": self.accounts_found,
            "totalRentLocked": self.total_rent_locked,
            "totalRentLockedSol": lamports_to_sol(self.total_rent_locked),
            "confidentAccounts": len(self.confident_accounts),
            "confidentRentLocked": self.confident_rent_locked,
            "confidentRentLockedSol": lamports_to_sol(self.confident_rent_locked),
            "otherAccounts": self.other_accounts,
            "otherRentLocked": self.other_rent_locked,
            "otherRentLockedSol": lamports_to_sol(self.other_rent_locked),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CycleReport:
    scanned: int
    eligible: int
    reclaimed: int
    total_amount: int  # lamports, successful results only
    dry_run: bool
    results: list[ReclaimResult] = field(default_factory=list)
    skipped_reason: str | None = None  # set when the emergency stop blocked the cycle

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "scanned": self.scanned,
            "eligible": self.eligible,
            "reclaimed": self.reclaimed,
            "totalAmount": self.total_amount,
            "totalSol": lamports_to_sol(self.total_amount),
            "dryRun": self.dry_run,
        }
        if self.skipped_reason is not None:
            data["skippedReason"] = self.skipped_reason
        return data


@dataclass(frozen=True)
class AccountView:
    """Sponsored account joined with its audit verdict (dashboard listing)."""

    account: SponsoredAccount
    audit: AuditResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.account.address,
            "kind": str(self.account.kind),
            "owner": self.account.owner,
            "mint": self.account.mint,
            "createdAt": self.account.created_at,
            "rentLamports": self.account.rent_lamports,
            "rentSol": lamports_to_sol(self.account.rent_lamports),
            "sponsorConfident": self.account.sponsor_confident,
            "detectedBy": self.account.detected_by,
            "eligible": self.audit.eligible,
            "lastActivity": self.audit.last_activity,
            "balance": self.audit.balance,
            "reasons": list(self.audit.reasons),
        }


def reclaim_result_to_dict(result: ReclaimResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "account": result.account,
        "success": result.success,
        "reclaimedLamports": result.reclaimed_lamports,
        "reclaimedSol": result.reclaimed_sol,
        "dryRun": result.dry_run,
        "timestamp": result.timestamp,
    }
    if result.signature:
        data["signature"] = result.signature
    if result.error:
        data["error"] = result.error
    return data


class ReclaimPipeline:
    """Scan/audit/reclaim orchestration plus safety and metrics passthroughs."""

    def __init__(
        self,
        *,
        rpc: SolanaRpcClient,
        wallet: OperatorWallet,
        safety: SafetyGate,
        ledger: Ledger,
        scanner: Scanner,
        auditor: Auditor,
        reclaimer: Reclaimer,
        alerter: ReclaimAlerter | None = None,
        network: str = "mainnet-beta",
        inactivity_days: int = 30,
    ) -> None:
        self._rpc = rpc
        self._wallet = wallet
        self._safety = safety
        self._ledger = ledger
        self._scanner = scanner
        self._auditor = auditor
        self._reclaimer = reclaimer
        self._alerter = alerter
        self._network = network
        self._inactivity_days = inactivity_days
        self._run_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, cfg: Settings) -> ReclaimPipeline:
        """Wire every component from settings. Raises ConfigurationError."""
        try:
            wallet = OperatorWallet(cfg.operator_private_key)
        except ValueError as e:
            raise ConfigurationError(f"OPERATOR_PRIVATE_KEY: {e}") from e
        try:
            rpc = SolanaRpcClient(
                cfg.solana_rpc_url,
                timeout=cfg.rpc_timeout_sec,
                confirm_timeout=cfg.confirm_timeout_sec,
            )
        except ValueError as e:
            raise ConfigurationError(f"SOLANA_RPC_URL: {e}") from e

        ledger = Ledger(cfg.ledger_file, memory_limit=cfg.ledger_memory_limit)
        ledger.replay()
        safety = SafetyGate(cfg.whitelist_file, cfg.emergency_stop_file)
        classifier = SponsorshipClassifier.build(
            program_ids=Settings.split_csv(cfg.sponsor_program_ids),
            memo_markers=Settings.split_csv(cfg.sponsor_memo_markers),
            relay_addresses=Settings.split_csv(cfg.sponsor_relay_addresses),
            fallback_confident=cfg.sponsor_fallback_confident,
        )
        alerter = None
        if cfg.alerts_enabled:
            alerter = ReclaimAlerter(
                threshold_sol=cfg.alert_threshold_sol,
                cooldown_sec=cfg.alert_cooldown_sec,
                telegram_bot_token=cfg.telegram_bot_token,
                telegram_admin_id=cfg.telegram_admin_id,
            )

        return cls(
            rpc=rpc,
            wallet=wallet,
            safety=safety,
            ledger=ledger,
            scanner=Scanner(
                rpc,
                ledger,
                classifier,
                page_size=cfg.max_signatures_per_request,
                request_delay_ms=cfg.request_delay_ms,
                signature_cap=cfg.scan_signature_cap,
            ),
            auditor=Auditor(
                rpc,
                safety,
                ledger,
                inactivity_days=cfg.inactivity_days,
                no_history_is_inactive=cfg.no_history_is_inactive,
                concurrency=cfg.audit_concurrency,
            ),
            reclaimer=Reclaimer(rpc, wallet, safety, ledger, dry_run=cfg.dry_run),
            alerter=alerter,
            network=cfg.solana_network,
            inactivity_days=cfg.inactivity_days,
        )

    @property
    def operator(self) -> str:
        return self._wallet.pubkey_str

    @property
    def dry_run(self) -> bool:
        return self._reclaimer.dry_run

    @property
    def busy(self) -> bool:
        return self._run_lock.locked()

    @asynccontextmanager
    async def _exclusive(self, operation: str) -> AsyncIterator[None]:
        # No await between the check and the acquire, so this can't interleave
        if self._run_lock.locked():
            raise PipelineBusyError(f"Cannot start {operation}: another run is in progress")
        async with self._run_lock:
            yield

    # ─── Runs ────────────────────────────────────────────────────────

    async def run_scan(self) -> ScanReport:
        async with self._exclusive("scan"):
            accounts = await self._scan_or_fail()
        return ScanReport(accounts=accounts)

    async def run_reclaim_cycle(self) -> CycleReport:
        """Scan → audit → reclaim eligible accounts, then record the cycle."""
        async with self._exclusive("reclaim cycle"):
            stop = await asyncio.to_thread(self._safety.is_stopped)
            if stop.stopped:
                logger.warning(f"[PIPELINE] Emergency stop is active ({stop.reason}), skipping cycle")
                return CycleReport(0, 0, 0, 0, self.dry_run, skipped_reason=stop.reason)

            mode = "DRY RUN" if self.dry_run else "LIVE"
            logger.info(f"[PIPELINE] Starting reclaim cycle ({mode}) for {self.operator}")

            accounts = await self._scan_or_fail()
            audits = await self._auditor.audit_batch(accounts)
            eligible = [a.account for a in audits if a.eligible]

            results: list[ReclaimResult] = []
            if eligible:
                results = await self._reclaimer.reclaim_batch(eligible)
            else:
                logger.info("[PIPELINE] No accounts to reclaim at this time")

            total = total_reclaimed(results)
            reclaimed = sum(1 for r in results if r.success)
            self._ledger.record_cycle(
                len(accounts), len(eligible), reclaimed, total, dry_run=self.dry_run
            )
            self._update_reclaimable(accounts, audits, results)

        await self._maybe_alert()
        return CycleReport(
            scanned=len(accounts),
            eligible=len(eligible),
            reclaimed=reclaimed,
            total_amount=total,
            dry_run=self.dry_run,
            results=results,
        )

    async def reclaim_single(self, address: str) -> ReclaimResult:
        """Close one account by address (no audit). ValueError on malformed address."""
        address = address.strip()
        if not is_valid_pubkey(address):
            raise ValueError(f"Invalid public key: {address!r}")
        async with self._exclusive("reclaim"):
            return await self._reclaimer.reclaim_account(address)

    async def list_accounts(self) -> list[AccountView]:
        """Scan and audit without reclaiming."""
        async with self._exclusive("account listing"):
            accounts = await self._scan_or_fail()
            audits = await self._auditor.audit_batch(accounts)
            self._update_reclaimable(accounts, audits, [])
        return [AccountView(acc, audit) for acc, audit in zip(accounts, audits, strict=True)]

    async def _scan_or_fail(self) -> list[SponsoredAccount]:
        try:
            return await self._scanner.scan(self.operator)
        except ChainError as e:
            logger.error(f"[PIPELINE] Scan failed: {e}")
            self._ledger.append(
                LedgerEntry(
                    action=LedgerAction.SCAN,
                    status=LedgerStatus.FAILURE,
                    reason=f"Scan failed: {e}",
                )
            )
            raise PipelineError(f"Scan failed: {e}") from e

    def _update_reclaimable(
        self,
        accounts: list[SponsoredAccount],
        audits: list[AuditResult],
        results: list[ReclaimResult],
    ) -> None:
        closed = {r.account for r in results if r.success and not r.dry_run}
        rent = {a.address: a.rent_lamports for a in accounts}
        reclaimable = sum(
            rent.get(a.account, 0) for a in audits if a.eligible and a.account not in closed
        )
        self._ledger.record_reclaimable(reclaimable)

    async def _maybe_alert(self) -> None:
        if self._alerter is not None:
            await self._alerter.check_and_alert(self._ledger.snapshot())

    # ─── Metrics / logs ──────────────────────────────────────────────

    def get_metrics(self) -> MetricsSnapshot:
        return self._ledger.snapshot()

    def get_recent_logs(self, limit: int = 100) -> list[LedgerEntry]:
        return self._ledger.recent_entries(limit)

    def get_config(self) -> dict[str, Any]:
        return {
            "network": self._network,
            "dryRun": self.dry_run,
            "inactivityDays": self._inactivity_days,
            "operator": self.operator,
        }

    # ─── Safety passthroughs ─────────────────────────────────────────

    def get_whitelist(self) -> WhitelistDocument:
        return self._safety.load_whitelist()

    def replace_whitelist(self, doc: WhitelistDocument) -> WhitelistDocument:
        return self._safety.replace_whitelist(doc)

    def add_to_whitelist(self, address: str) -> bool:
        return self._safety.add_to_whitelist(address)

    def remove_from_whitelist(self, address: str) -> bool:
        return self._safety.remove_from_whitelist(address)

    def add_owner_to_whitelist(self, owner: str) -> bool:
        return self._safety.add_owner_to_whitelist(owner)

    def remove_owner_from_whitelist(self, owner: str) -> bool:
        return self._safety.remove_owner_from_whitelist(owner)

    def get_emergency_stop(self) -> EmergencyStopState:
        return self._safety.is_stopped()

    def enable_emergency_stop(self, reason: str = "") -> EmergencyStopState:
        return self._safety.set_stopped(reason)

    def disable_emergency_stop(self) -> EmergencyStopState:
        return self._safety.clear_stopped()

    async def close(self) -> None:
        await self._rpc.close()
        if self._alerter is not None:
            await self._alerter.close()
