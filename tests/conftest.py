"""Shared test fixtures."""

from pathlib import Path

import pytest
from solders.keypair import Keypair  # type: ignore[import-untyped]

from src.chain.wallet import OperatorWallet
from src.reclaim.ledger import Ledger
from src.reclaim.safety import SafetyGate
from tests.fakes import FakeChain, build_pipeline


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def ledger(data_dir: Path) -> Ledger:
    return Ledger(data_dir / "logs" / "reclaim.log")


@pytest.fixture
def safety(data_dir: Path) -> SafetyGate:
    return SafetyGate(data_dir / "whitelist.json", data_dir / "state" / "emergency.json")


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def wallet() -> OperatorWallet:
    """Operator wallet with a random keypair."""
    return OperatorWallet(str(Keypair()))


@pytest.fixture
def operator(wallet: OperatorWallet) -> str:
    return wallet.pubkey_str


@pytest.fixture
def pipeline(chain, wallet, safety, ledger):
    """Dry-run pipeline over the fake chain."""
    return build_pipeline(chain, wallet, safety, ledger)
