"""
Pytest configuration and shared fixtures.

Testing Standards:
- Unit tests go in tests/unit/, HTTP-level tests in tests/integration/
- The ledger is replaced by tests.helpers.FakeLedger; web3 objects by MagicMock
- The voter store runs on a throwaway SQLite file under tmp_path
"""

import pytest
from web3 import Web3

from backend.identity import RegistrationClaim, sign_registration
from backend.models import init_db
from backend.store import VoterRecordStore
from tests.helpers import FakeLedger


def private_key_for(label: str) -> str:
    """Deterministic test private key derived from a label."""
    return Web3.to_hex(Web3.keccak(text=label))


@pytest.fixture
def voter_key() -> str:
    return private_key_for("voter-5")


@pytest.fixture
def other_key() -> str:
    return private_key_for("voter-6")


@pytest.fixture
def store(tmp_path) -> VoterRecordStore:
    return VoterRecordStore(init_db(f"sqlite:///{tmp_path / 'voters.db'}"))


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger(candidates=["Alice", "Bob"])


@pytest.fixture
def make_claim(voter_key):
    """Build a signed RegistrationClaim; sign_constituency forges a mismatch."""

    def _make(
        private_key: str | None = None,
        username: str = "voter5",
        account_identifier: str = "AC123",
        constituency: str = "District1",
        sign_constituency: str | None = None,
    ) -> RegistrationClaim:
        address, signature = sign_registration(
            private_key or voter_key, sign_constituency or constituency
        )
        return RegistrationClaim(
            username=username,
            account_identifier=account_identifier,
            constituency=constituency,
            address=address,
            signature=signature,
        )

    return _make
