"""Command-line interface.

Usage:
    python -m src.cli scan
    python -m src.cli reclaim
    python -m src.cli reclaim-account <address>
    python -m src.cli stats
    python -m src.cli emergency-stop --enable --reason "investigating"
    python -m src.cli whitelist --add <address>

Safety and stats commands work without an operator key; scan/reclaim
commands build the full pipeline and fail fast on bad configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from datetime import datetime

from loguru import logger

from config.settings import Settings, settings
from src.chain.instructions import lamports_to_sol
from src.reclaim.exceptions import RecaptureError
from src.reclaim.ledger import Ledger
from src.reclaim.pipeline import ReclaimPipeline
from src.reclaim.safety import SafetyGate
from src.utils.logger import setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recapture", description="Reclaim rent from sponsored Solana accounts"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("scan", help="Scan operator history for sponsored accounts")
    sub.add_parser("reclaim", help="Scan, audit and reclaim eligible accounts")

    single = sub.add_parser("reclaim-account", help="Reclaim one account by address")
    single.add_argument("address")

    sub.add_parser("stats", help="Show metrics folded from the ledger")

    stop = sub.add_parser("emergency-stop", help="Manage the emergency stop")
    stop_mode = stop.add_mutually_exclusive_group(required=True)
    stop_mode.add_argument("--enable", action="store_true")
    stop_mode.add_argument("--disable", action="store_true")
    stop_mode.add_argument("--status", action="store_true")
    stop.add_argument("--reason", default="Manual stop from CLI")

    wl = sub.add_parser("whitelist", help="Manage protected accounts and owners")
    wl_mode = wl.add_mutually_exclusive_group(required=True)
    wl_mode.add_argument("--add", metavar="ADDRESS")
    wl_mode.add_argument("--remove", metavar="ADDRESS")
    wl_mode.add_argument("--add-owner", metavar="OWNER")
    wl_mode.add_argument("--remove-owner", metavar="OWNER")
    wl_mode.add_argument("--list", action="store_true")

    return parser


def _fmt_ts(ms: int | None) -> str:
    if not ms:
        return "never"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


# ─── Commands ────────────────────────────────────────────────────────


async def _cmd_scan(cfg: Settings) -> int:
    pipeline = ReclaimPipeline.from_settings(cfg)
    try:
        report = await pipeline.run_scan()
    finally:
        await pipeline.close()

    print("\nResults:")
    print(f"  Sponsored accounts: {report.accounts_found}")
    print(f"  Rent locked:        {lamports_to_sol(report.total_rent_locked):.6f} SOL")
    print(
        f"    Confident:        {len(report.confident_accounts)} "
        f"({lamports_to_sol(report.confident_rent_locked):.6f} SOL)"
    )
    print(
        f"    Other:            {report.other_accounts} "
        f"({lamports_to_sol(report.other_rent_locked):.6f} SOL)"
    )
    return 0


async def _cmd_reclaim(cfg: Settings) -> int:
    pipeline = ReclaimPipeline.from_settings(cfg)
    try:
        report = await pipeline.run_reclaim_cycle()
    finally:
        await pipeline.close()

    if report.skipped:
        print(f"Emergency stop is active: {report.skipped_reason}")
        return 1

    verb = "simulated" if report.dry_run else "reclaimed"
    print(f"\nResults ({'DRY RUN' if report.dry_run else 'LIVE'}):")
    print(f"  Accounts scanned:       {report.scanned}")
    print(f"  Eligible for reclaim:   {report.eligible}")
    print(f"  Successfully {verb}: {report.reclaimed}")
    print(f"  Total SOL {verb}:    {lamports_to_sol(report.total_amount):.6f}")
    return 0


async def _cmd_reclaim_account(cfg: Settings, address: str) -> int:
    pipeline = ReclaimPipeline.from_settings(cfg)
    try:
        result = await pipeline.reclaim_single(address)
    finally:
        await pipeline.close()

    if not result.success:
        print(f"Failed: {result.error}")
        return 1
    prefix = "[DRY RUN] Would reclaim" if result.dry_run else "Reclaimed"
    print(f"{prefix} {result.reclaimed_sol:.6f} SOL from {result.account}")
    if result.signature:
        print(f"  Signature: {result.signature}")
    return 0


def _cmd_stats(cfg: Settings) -> int:
    ledger = Ledger(cfg.ledger_file, memory_limit=cfg.ledger_memory_limit)
    ledger.replay()
    m = ledger.snapshot()

    print("\nMetrics:")
    print(f"  Accounts monitored:  {m.accounts_monitored}")
    print(f"  Total rent locked:   {m.total_rent_locked_sol:.6f} SOL")
    print(
        f"    Confident:         {m.confident_accounts} "
        f"({lamports_to_sol(m.confident_rent_locked):.6f} SOL)"
    )
    print(
        f"    Other:             {m.other_accounts} "
        f"({lamports_to_sol(m.other_rent_locked):.6f} SOL)"
    )
    print(f"  Total reclaimed:     {m.total_reclaimed_sol:.6f} SOL")
    print(f"  Accounts reclaimed:  {m.accounts_reclaimed}")
    print(f"  Cycles completed:    {m.cycles_completed}")
    print(f"  Last scan:           {_fmt_ts(m.last_scan_time)}")

    cycle = ledger.last_cycle
    if cycle is not None:
        print(
            f"  Last cycle:          {_fmt_ts(cycle.timestamp)} "
            f"({cycle.reclaimed}/{cycle.eligible} reclaimed, "
            f"{lamports_to_sol(cycle.total_amount):.6f} SOL)"
        )
    return 0


def _cmd_emergency_stop(gate: SafetyGate, args: argparse.Namespace) -> int:
    if args.enable:
        state = gate.set_stopped(args.reason)
        print(f"Emergency stop ENABLED: {state.reason}")
    elif args.disable:
        gate.clear_stopped()
        print("Emergency stop disabled")
    else:
        state = gate.is_stopped()
        if state.stopped:
            print(f"Emergency stop is ACTIVE since {_fmt_ts(state.stopped_at)}: {state.reason}")
        else:
            print("Emergency stop is not active")
    return 0


def _cmd_whitelist(gate: SafetyGate, args: argparse.Namespace) -> int:
    if args.list:
        doc = gate.load_whitelist()
        print(f"Whitelisted accounts ({len(doc.accounts)}):")
        for address in doc.accounts:
            print(f"  {address}")
        print(f"Whitelisted owners ({len(doc.owners)}):")
        for owner in doc.owners:
            print(f"  {owner}")
        return 0

    if args.add:
        changed, msg = gate.add_to_whitelist(args.add), f"account {args.add}"
        verb = "Added" if changed else "Already whitelisted:"
    elif args.remove:
        changed, msg = gate.remove_from_whitelist(args.remove), f"account {args.remove}"
        verb = "Removed" if changed else "Not whitelisted:"
    elif args.add_owner:
        changed, msg = gate.add_owner_to_whitelist(args.add_owner), f"owner {args.add_owner}"
        verb = "Added" if changed else "Already whitelisted:"
    else:
        changed, msg = gate.remove_owner_from_whitelist(args.remove_owner), f"owner {args.remove_owner}"
        verb = "Removed" if changed else "Not whitelisted:"

    print(f"{verb} {msg}")
    return 0


def main(argv: Sequence[str] | None = None, cfg: Settings = settings) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(level="INFO", redact=[cfg.operator_private_key])

    try:
        if args.command == "scan":
            return asyncio.run(_cmd_scan(cfg))
        if args.command == "reclaim":
            return asyncio.run(_cmd_reclaim(cfg))
        if args.command == "reclaim-account":
            return asyncio.run(_cmd_reclaim_account(cfg, args.address))
        if args.command == "stats":
            return _cmd_stats(cfg)

        gate = SafetyGate(cfg.whitelist_file, cfg.emergency_stop_file)
        if args.command == "emergency-stop":
            return _cmd_emergency_stop(gate, args)
        return _cmd_whitelist(gate, args)
    except (RecaptureError, ValueError) as e:
        logger.error(f"[CLI] {args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
