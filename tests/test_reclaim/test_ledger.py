"""Tests for the JSON-lines ledger and its metrics fold."""

from __future__ import annotations

import json
from pathlib import Path

from src.reclaim.ledger import Ledger
from src.reclaim.models import LedgerAction, LedgerEntry, LedgerStatus


def _reclaim(amount: int, *, status=LedgerStatus.SUCCESS, dry_run=False, account="acc") -> LedgerEntry:
    return LedgerEntry(
        account=account,
        action=LedgerAction.RECLAIM,
        status=status,
        amount=amount,
        dry_run=dry_run,
    )


# ── Append / read ──────────────────────────────────────────────────────


class TestAppend:
    def test_writes_camel_case_json_line(self, ledger: Ledger):
        ledger.append(_reclaim(2_039_280, account="abc"))

        lines = ledger.path.read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["account"] == "abc"
        assert record["action"] == "reclaim"
        assert record["status"] == "success"
        assert record["amount"] == 2_039_280
        assert record["dryRun"] is False
        assert "reason" not in record  # None fields omitted

    def test_creates_parent_directories(self, tmp_path: Path):
        ledger = Ledger(tmp_path / "a" / "b" / "ledger.log")
        ledger.append(_reclaim(1))
        assert ledger.path.exists()

    def test_recent_entries_most_recent_last(self, ledger: Ledger):
        for i in range(5):
            ledger.append(_reclaim(i, account=f"acc{i}"))

        recent = ledger.recent_entries(3)
        assert [e.account for e in recent] == ["acc2", "acc3", "acc4"]

    def test_recent_entries_non_positive_limit(self, ledger: Ledger):
        ledger.append(_reclaim(1))
        assert ledger.recent_entries(0) == []

    def test_memory_limit_bounds_buffer(self, tmp_path: Path):
        ledger = Ledger(tmp_path / "ledger.log", memory_limit=2)
        for i in range(4):
            ledger.append(_reclaim(i, account=f"acc{i}"))
        assert [e.account for e in ledger.recent_entries(10)] == ["acc2", "acc3"]
        assert len(ledger.path.read_text().splitlines()) == 4

    def test_write_failure_does_not_raise(self, tmp_path: Path):
        target = tmp_path / "is_a_dir"
        target.mkdir()
        ledger = Ledger(target)

        ledger.append(_reclaim(5))

        assert len(ledger.recent_entries()) == 1
        assert ledger.snapshot().total_reclaimed == 5


# ── Metrics fold ───────────────────────────────────────────────────────


class TestMetrics:
    def test_scan_entry_updates_monitored_and_locked(self, ledger: Ledger):
        entry = ledger.append(
            LedgerEntry(
                action=LedgerAction.SCAN,
                status=LedgerStatus.SUCCESS,
                count=3,
                amount=6_117_840,
            )
        )
        m = ledger.snapshot()
        assert m.accounts_monitored == 3
        assert m.total_rent_locked == 6_117_840
        assert m.last_scan_time == entry.timestamp

    def test_live_success_counts(self, ledger: Ledger):
        ledger.append(_reclaim(100))
        ledger.append(_reclaim(50))
        m = ledger.snapshot()
        assert m.total_reclaimed == 150
        assert m.accounts_reclaimed == 2

    def test_dry_run_and_failures_do_not_count(self, ledger: Ledger):
        ledger.append(_reclaim(100, dry_run=True))
        ledger.append(_reclaim(100, status=LedgerStatus.FAILURE))
        m = ledger.snapshot()
        assert m.total_reclaimed == 0
        assert m.accounts_reclaimed == 0

    def test_record_reclaimable(self, ledger: Ledger):
        ledger.record_reclaimable(4_000_000_000)
        m = ledger.snapshot()
        assert m.reclaimable == 4_000_000_000
        assert m.reclaimable_sol == 4.0

    def test_snapshot_is_a_copy(self, ledger: Ledger):
        snap = ledger.snapshot()
        snap.total_reclaimed = 999
        assert ledger.snapshot().total_reclaimed == 0

    def test_record_cycle(self, ledger: Ledger):
        summary = ledger.record_cycle(3, 2, 2, 4_078_560, dry_run=True)

        assert ledger.last_cycle == summary
        assert ledger.snapshot().cycles_completed == 1
        record = json.loads(ledger.path.read_text().splitlines()[-1])
        assert record["type"] == "cycle_summary"
        assert record["totalAmount"] == 4_078_560
        assert record["dryRun"] is True

    def test_cycle_summary_not_in_recent_entries(self, ledger: Ledger):
        ledger.record_cycle(0, 0, 0, 0)
        assert ledger.recent_entries() == []


# ── Replay ─────────────────────────────────────────────────────────────


class TestReplay:
    def test_replay_rebuilds_state(self, ledger: Ledger):
        ledger.append(_reclaim(100))
        ledger.append(_reclaim(200, dry_run=True))
        ledger.record_cycle(2, 2, 2, 300)

        fresh = Ledger(ledger.path)
        assert fresh.replay() == 3

        m = fresh.snapshot()
        assert m.total_reclaimed == 100
        assert m.accounts_reclaimed == 1
        assert m.cycles_completed == 1
        assert len(fresh.recent_entries()) == 2
        assert fresh.last_cycle is not None
        assert fresh.last_cycle.total_amount == 300

    def test_replay_skips_malformed_lines(self, ledger: Ledger):
        ledger.append(_reclaim(100))
        with ledger.path.open("a") as f:
            f.write("not json\n")
            f.write('{"action": "bogus"}\n')
            f.write("\n")
        ledger.append(_reclaim(1))

        fresh = Ledger(ledger.path)
        assert fresh.replay() == 2
        assert fresh.snapshot().total_reclaimed == 101

    def test_replay_missing_file(self, tmp_path: Path):
        assert Ledger(tmp_path / "nope.log").replay() == 0
