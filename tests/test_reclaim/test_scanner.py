"""Tests for Scanner — history pagination, extraction, partial-failure tolerance."""

from __future__ import annotations

import pytest

from src.chain.exceptions import RpcError
from src.chain.models import ParsedInstruction
from src.reclaim.ledger import Ledger
from src.reclaim.models import AccountKind, LedgerAction, LedgerStatus
from src.reclaim.scanner import Scanner
from src.reclaim.sponsorship import SponsorshipClassifier
from tests.fakes import (
    TOKEN_ACCOUNT_RENT,
    FakeChain,
    ata_create_tx,
    init_account_tx,
    new_address,
    sig,
)


def _scanner(chain: FakeChain, ledger: Ledger, **kwargs) -> Scanner:
    kwargs.setdefault("page_size", 1000)
    kwargs.setdefault("request_delay_ms", 0)
    kwargs.setdefault("signature_cap", 0)
    return Scanner(chain, ledger, SponsorshipClassifier.build(), **kwargs)


def _history(chain: FakeChain, operator: str, count: int) -> list[str]:
    """``count`` operator-paid account creations, newest first."""
    accounts = []
    signatures = []
    for i in range(count):
        account = new_address()
        name = f"sig{i}"
        chain.transactions[name] = init_account_tx(
            name, fee_payer=operator, account=account, owner=new_address(), mint=new_address()
        )
        accounts.append(account)
        signatures.append(sig(name))
    chain.signatures[operator] = list(reversed(signatures))
    return list(reversed(accounts))


# ── Pagination ─────────────────────────────────────────────────────────


class TestPagination:
    @pytest.mark.asyncio
    async def test_short_page_means_single_fetch(self, chain, ledger, operator):
        _history(chain, operator, 4)

        accounts = await _scanner(chain, ledger, page_size=5).scan(operator)

        assert len(chain.signature_requests) == 1
        assert len(accounts) == 4

    @pytest.mark.asyncio
    async def test_cursor_advances_to_oldest_signature(self, chain, ledger, operator):
        _history(chain, operator, 5)

        accounts = await _scanner(chain, ledger, page_size=2).scan(operator)

        befores = [before for _, _, before in chain.signature_requests]
        assert befores == [None, "sig3", "sig1"]
        assert len(accounts) == 5

    @pytest.mark.asyncio
    async def test_exact_multiple_stops_on_empty_page(self, chain, ledger, operator):
        _history(chain, operator, 4)

        await _scanner(chain, ledger, page_size=2).scan(operator)

        assert len(chain.signature_requests) == 3

    @pytest.mark.asyncio
    async def test_signature_cap(self, chain, ledger, operator):
        _history(chain, operator, 10)

        accounts = await _scanner(chain, ledger, page_size=4, signature_cap=6).scan(operator)

        limits = [limit for _, limit, _ in chain.signature_requests]
        assert limits == [4, 2]
        assert len(accounts) == 6

    @pytest.mark.asyncio
    async def test_zero_cap_scans_full_history(self, chain, ledger, operator):
        _history(chain, operator, 9)
        accounts = await _scanner(chain, ledger, page_size=3, signature_cap=0).scan(operator)
        assert len(accounts) == 9

    @pytest.mark.asyncio
    async def test_empty_history(self, chain, ledger, operator):
        assert await _scanner(chain, ledger).scan(operator) == []

    @pytest.mark.asyncio
    async def test_page_failure_propagates(self, chain, ledger, operator):
        chain.page_error = RpcError("getSignaturesForAddress", "connection refused")
        with pytest.raises(RpcError):
            await _scanner(chain, ledger).scan(operator)

    def test_invalid_page_size(self, chain, ledger):
        with pytest.raises(ValueError):
            _scanner(chain, ledger, page_size=0)


# ── Per-item tolerance ─────────────────────────────────────────────────


class TestPartialFailures:
    @pytest.mark.asyncio
    async def test_failed_fetch_is_skipped(self, chain, ledger, operator):
        expected = _history(chain, operator, 3)
        chain.transactions["sig1"] = RpcError("getTransaction", "timeout")

        accounts = await _scanner(chain, ledger).scan(operator)

        assert [a.address for a in accounts] == [expected[0], expected[2]]

    @pytest.mark.asyncio
    async def test_missing_transaction_is_skipped(self, chain, ledger, operator):
        _history(chain, operator, 2)
        del chain.transactions["sig0"]
        assert len(await _scanner(chain, ledger).scan(operator)) == 1

    @pytest.mark.asyncio
    async def test_failed_signatures_not_fetched(self, chain, ledger, operator):
        _history(chain, operator, 2)
        chain.signatures[operator][0] = sig("sig1", err={"InstructionError": [0, "Custom"]})

        accounts = await _scanner(chain, ledger).scan(operator)

        assert chain.transaction_requests == ["sig0"]
        assert len(accounts) == 1


# ── Extraction ─────────────────────────────────────────────────────────


class TestExtraction:
    def test_candidate_fields(self, chain, ledger, operator):
        account, owner, mint = new_address(), new_address(), new_address()
        tx = init_account_tx(
            "s", fee_payer=operator, account=account, owner=owner, mint=mint, block_time=1_700_000_000
        )

        [found] = _scanner(chain, ledger).extract_accounts(tx, operator)

        assert found.address == account
        assert found.owner == owner
        assert found.mint == mint
        assert found.kind == AccountKind.TOKEN_ACCOUNT
        assert found.rent_lamports == TOKEN_ACCOUNT_RENT
        assert found.created_at == 1_700_000_000_000
        assert found.signature == "s"
        assert found.sponsor_confident
        assert found.detected_by == "fallback"

    @pytest.mark.parametrize("ix_type", ["initializeAccount", "initializeAccount2", "initializeAccount3"])
    def test_all_initialize_variants(self, chain, ledger, operator, ix_type):
        tx = init_account_tx(
            "s", fee_payer=operator, account=new_address(), owner=new_address(), mint=new_address(), ix_type=ix_type
        )
        assert len(_scanner(chain, ledger).extract_accounts(tx, operator)) == 1

    def test_other_fee_payer_ignored(self, chain, ledger, operator):
        tx = init_account_tx(
            "s", fee_payer=new_address(), account=new_address(), owner=operator, mint=new_address()
        )
        assert _scanner(chain, ledger).extract_accounts(tx, operator) == []

    def test_associated_token_account(self, chain, ledger, operator):
        account, wallet = new_address(), new_address()
        tx = ata_create_tx("s", fee_payer=operator, account=account, wallet=wallet, mint=new_address())

        found = _scanner(chain, ledger).extract_accounts(tx, operator)

        assert len(found) == 1  # ATA create + inner init collapse to one
        assert found[0].kind == AccountKind.PROGRAM_DERIVED
        assert found[0].owner == wallet

    def test_idempotent_create_on_existing_account_skipped(self, chain, ledger, operator):
        tx = ata_create_tx(
            "s",
            fee_payer=operator,
            account=new_address(),
            wallet=new_address(),
            mint=new_address(),
            idempotent=True,
            pre_existing=True,
        )
        assert _scanner(chain, ledger).extract_accounts(tx, operator) == []

    def test_failed_transaction_ignored(self, chain, ledger, operator):
        tx = init_account_tx(
            "s", fee_payer=operator, account=new_address(), owner=new_address(), mint=new_address()
        )
        failed = tx.model_copy(update={"err": {"InstructionError": [1, "Custom"]}})
        assert _scanner(chain, ledger).extract_accounts(failed, operator) == []


# ── Dedupe / ledger ────────────────────────────────────────────────────


class TestScanResult:
    @pytest.mark.asyncio
    async def test_duplicate_address_keeps_newest(self, chain, ledger, operator):
        account = new_address()
        for name in ("old", "new"):
            chain.transactions[name] = init_account_tx(
                name, fee_payer=operator, account=account, owner=new_address(), mint=new_address()
            )
        chain.signatures[operator] = [sig("new"), sig("old")]

        accounts = await _scanner(chain, ledger).scan(operator)

        assert len(accounts) == 1
        assert accounts[0].signature == "new"

    @pytest.mark.asyncio
    async def test_writes_one_summary_entry(self, chain, ledger, operator):
        _history(chain, operator, 3)

        await _scanner(chain, ledger).scan(operator)

        entries = ledger.recent_entries()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == LedgerAction.SCAN
        assert entry.status == LedgerStatus.SUCCESS
        assert entry.count == 3
        assert entry.amount == 3 * TOKEN_ACCOUNT_RENT
        assert "Scanned 3 signatures" in entry.reason

        m = ledger.snapshot()
        assert m.accounts_monitored == 3
        assert m.total_rent_locked == 3 * TOKEN_ACCOUNT_RENT

    @pytest.mark.asyncio
    async def test_summary_splits_confident_accounts(self, chain, ledger, operator):
        paymaster = new_address()
        confident, other = new_address(), new_address()
        chain.transactions["viaPaymaster"] = init_account_tx(
            "viaPaymaster",
            fee_payer=operator,
            account=confident,
            owner=new_address(),
            mint=new_address(),
            extra=[ParsedInstruction(program_id=paymaster, data="1")],
        )
        chain.transactions["direct"] = init_account_tx(
            "direct", fee_payer=operator, account=other, owner=new_address(), mint=new_address()
        )
        chain.signatures[operator] = [sig("viaPaymaster"), sig("direct")]
        classifier = SponsorshipClassifier.build(program_ids=[paymaster], fallback_confident=False)

        accounts = await Scanner(chain, ledger, classifier, request_delay_ms=0).scan(operator)

        assert {a.address: a.sponsor_confident for a in accounts} == {confident: True, other: False}
        [entry] = ledger.recent_entries()
        assert entry.confident_count == 1
        assert entry.confident_amount == TOKEN_ACCOUNT_RENT
        m = ledger.snapshot()
        assert m.confident_accounts == 1
        assert m.other_accounts == 1
        assert m.other_rent_locked == TOKEN_ACCOUNT_RENT
