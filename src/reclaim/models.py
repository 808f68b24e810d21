"""Domain records for the scan → audit → reclaim pipeline.

Stage results are frozen dataclasses (produced once, never mutated).
Persisted documents and ledger lines are pydantic models serialized with
camelCase keys so the JSON files stay readable by the dashboard.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

from src.chain.instructions import lamports_to_sol

NO_ACCOUNT = "none"


def now_ms() -> int:
    return int(time.time() * 1000)


class AccountKind(StrEnum):
    TOKEN_ACCOUNT = "token-account"
    SYSTEM_ACCOUNT = "system-account"
    PROGRAM_DERIVED = "program-derived"


@dataclass(frozen=True)
class SponsoredAccount:
    """An account whose rent deposit the operator paid."""

    address: str
    kind: AccountKind
    created_at: int  # epoch ms of the creating transaction
    rent_lamports: int
    owner: str
    mint: str | None = None
    sponsor_confident: bool = False
    detected_by: str = ""  # detector that produced the confidence verdict
    signature: str = ""  # creating transaction


@dataclass(frozen=True)
class AuditResult:
    """Eligibility verdict for one account."""

    account: str
    eligible: bool
    is_empty: bool
    is_inactive: bool
    is_closeable: bool
    is_not_whitelisted: bool
    last_activity: int | None  # epoch ms
    balance: int  # token units for token accounts, lamports otherwise
    reasons: tuple[str, ...] = ()

    @classmethod
    def errored(cls, account: str, error: str) -> AuditResult:
        return cls(
            account=account,
            eligible=False,
            is_empty=False,
            is_inactive=False,
            is_closeable=False,
            is_not_whitelisted=False,
            last_activity=None,
            balance=0,
            reasons=(f"Error: {error}",),
        )


@dataclass(frozen=True)
class ReclaimResult:
    """Outcome of one close attempt."""

    account: str
    success: bool
    reclaimed_lamports: int = 0
    dry_run: bool = False
    signature: str | None = None
    error: str | None = None
    aborted: bool = False  # blocked by emergency stop, not by the chain
    timestamp: int = field(default_factory=now_ms)

    @property
    def reclaimed_sol(self) -> float:
        return lamports_to_sol(self.reclaimed_lamports)


def total_reclaimed(results: list[ReclaimResult]) -> int:
    """Sum of lamports over successful results only."""
    return sum(r.reclaimed_lamports for r in results if r.success)


# ─── Persisted documents ─────────────────────────────────────────────


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class WhitelistDocument(CamelModel):
    accounts: list[str] = []
    owners: list[str] = []
    description: str = ""

    @model_validator(mode="after")
    def _dedupe(self) -> WhitelistDocument:
        self.accounts = sorted(set(self.accounts))
        self.owners = sorted(set(self.owners))
        return self


class EmergencyStopState(CamelModel):
    stopped: bool = False
    stopped_at: int | None = None
    reason: str = ""

    @model_validator(mode="after")
    def _stopped_at_iff_stopped(self) -> EmergencyStopState:
        # Hand-edited files may break the invariant; normalize instead of rejecting
        if not self.stopped:
            self.stopped_at = None
        elif self.stopped_at is None:
            self.stopped_at = now_ms()
        return self


class LedgerAction(StrEnum):
    SCAN = "scan"
    AUDIT = "audit"
    RECLAIM = "reclaim"


class LedgerStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class LedgerEntry(CamelModel):
    """One line of the append-only ledger."""

    timestamp: int = Field(default_factory=now_ms)
    account: str = NO_ACCOUNT
    action: LedgerAction
    status: LedgerStatus
    amount: int | None = None  # lamports
    count: int | None = None  # accounts found (scan entries)
    confident_count: int | None = None  # scan entries: accounts with a matched sponsorship detector
    confident_amount: int | None = None
    reason: str | None = None
    signature: str | None = None
    dry_run: bool | None = None


class CycleSummary(CamelModel):
    type: Literal["cycle_summary"] = "cycle_summary"
    timestamp: int = Field(default_factory=now_ms)
    scanned: int
    eligible: int
    reclaimed: int
    total_amount: int  # lamports
    dry_run: bool = False


class MetricsSnapshot(CamelModel):
    """Running totals folded from the ledger. Amounts in lamports."""

    total_rent_locked: int = 0
    reclaimable: int = 0
    accounts_monitored: int = 0
    confident_accounts: int = 0
    confident_rent_locked: int = 0
    total_reclaimed: int = 0
    accounts_reclaimed: int = 0
    last_scan_time: int | None = None
    cycles_completed: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_rent_locked_sol(self) -> float:
        return lamports_to_sol(self.total_rent_locked)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def reclaimable_sol(self) -> float:
        return lamports_to_sol(self.reclaimable)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_reclaimed_sol(self) -> float:
        return lamports_to_sol(self.total_reclaimed)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def other_accounts(self) -> int:
        return max(self.accounts_monitored - self.confident_accounts, 0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def other_rent_locked(self) -> int:
        return max(self.total_rent_locked - self.confident_rent_locked, 0)
