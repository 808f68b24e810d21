"""Append-only JSON-lines ledger with running metrics.

The file is the source of truth; metrics are an in-memory fold over it,
updated on every append and rebuilt by ``replay()`` at startup.
Thread-safe via a simple lock (pipeline runs in one event loop, but the
API may read from a worker thread).
"""

from __future__ import annotations

import json
from collections import deque
from pathlib import Path
from threading import Lock

from loguru import logger
from pydantic import ValidationError

from src.reclaim.models import (
    CycleSummary,
    LedgerAction,
    LedgerEntry,
    LedgerStatus,
    MetricsSnapshot,
)


class Ledger:
    """Durable event log plus metrics snapshot. Created once and injected."""

    def __init__(self, path: str | Path, *, memory_limit: int = 10000) -> None:
        self._path = Path(path)
        self._lock = Lock()
        self._entries: deque[LedgerEntry] = deque(maxlen=memory_limit)
        self._metrics = MetricsSnapshot()
        self._last_cycle: CycleSummary | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def last_cycle(self) -> CycleSummary | None:
        return self._last_cycle

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        with self._lock:
            self._write_line(entry.to_json())
            self._entries.append(entry)
            self._fold(entry)
        return entry

    def recent_entries(self, limit: int = 100) -> list[LedgerEntry]:
        """Most recent entries, oldest first (most recent last)."""
        if limit <= 0:
            return []
        with self._lock:
            entries = list(self._entries)
        return entries[-limit:]

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return self._metrics.model_copy()

    def record_reclaimable(self, lamports: int) -> None:
        with self._lock:
            self._metrics.reclaimable = lamports

    def record_cycle(
        self,
        scanned: int,
        eligible: int,
        reclaimed: int,
        total_amount: int,
        *,
        dry_run: bool = False,
    ) -> CycleSummary:
        summary = CycleSummary(
            scanned=scanned,
            eligible=eligible,
            reclaimed=reclaimed,
            total_amount=total_amount,
            dry_run=dry_run,
        )
        with self._lock:
            self._write_line(summary.to_json())
            self._fold_cycle(summary)
        logger.info(
            f"[LEDGER] Cycle: scanned={scanned} eligible={eligible} "
            f"reclaimed={reclaimed} total={total_amount} lamports"
            f"{' [DRY RUN]' if dry_run else ''}"
        )
        return summary

    def replay(self) -> int:
        """Rebuild entries and metrics from the file. Returns lines applied."""
        with self._lock:
            self._entries.clear()
            self._metrics = MetricsSnapshot()
            self._last_cycle = None

            try:
                lines = self._path.read_text(encoding="utf-8").splitlines()
            except FileNotFoundError:
                return 0
            except OSError as e:
                logger.warning(f"[LEDGER] Cannot read {self._path}: {e}")
                return 0

            applied = 0
            for lineno, line in enumerate(lines, start=1):
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                    if record.get("type") == "cycle_summary":
                        self._fold_cycle(CycleSummary.model_validate(record))
                    else:
                        entry = LedgerEntry.model_validate(record)
                        self._entries.append(entry)
                        self._fold(entry)
                    applied += 1
                except (ValueError, ValidationError, AttributeError) as e:
                    logger.debug(f"[LEDGER] Skipping malformed line {lineno}: {e}")

        logger.info(f"[LEDGER] Replayed {applied} records from {self._path}")
        return applied

    # ─── Internals (caller holds the lock) ───────────────────────────

    def _write_line(self, line: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            # The on-chain action already happened; keep running and keep it in memory
            logger.error(f"[LEDGER] Failed to write {self._path}: {e}")

    def _fold(self, entry: LedgerEntry) -> None:
        if entry.status != LedgerStatus.SUCCESS:
            return
        if entry.action == LedgerAction.SCAN:
            self._metrics.last_scan_time = entry.timestamp
            if entry.count is not None:
                self._metrics.accounts_monitored = entry.count
                self._metrics.confident_accounts = entry.confident_count or 0
            if entry.amount is not None:
                self._metrics.total_rent_locked = entry.amount
                self._metrics.confident_rent_locked = entry.confident_amount or 0
        elif entry.action == LedgerAction.RECLAIM and entry.amount and not entry.dry_run:
            self._metrics.total_reclaimed += entry.amount
            self._metrics.accounts_reclaimed += 1

    def _fold_cycle(self, summary: CycleSummary) -> None:
        self._last_cycle = summary
        self._metrics.cycles_completed += 1
