"""Unit tests for VoterRecordStore over SQLite."""

from dataclasses import replace

import pytest
from sqlalchemy.orm import sessionmaker

from backend.errors import AlreadyRegistered, AlreadyVoted, NotRegistered, StoreUnavailable
from backend.models import make_engine
from backend.store import VoterRecord, VoterRecordStore

ADDRESS = "0x1111111111111111111111111111111111111111"
OTHER_ADDRESS = "0x2222222222222222222222222222222222222222"
HASH = "0x" + "aa" * 32
OTHER_HASH = "0x" + "bb" * 32


@pytest.fixture
def record() -> VoterRecord:
    return VoterRecord(
        username="voter5",
        account_hash=HASH,
        constituency="District1",
        address=ADDRESS,
        is_registered=True,
        registration_tx="0x" + "01" * 32,
    )


class TestInsertAndFind:
    def test_round_trip(self, store, record) -> None:
        inserted = store.insert(record)

        found = store.find_by_hash(HASH)
        assert found == inserted
        assert found.is_registered is True
        assert found.has_voted is False
        assert found.registered_at is not None
        assert store.find_by_address(ADDRESS) == inserted

    def test_missing(self, store) -> None:
        assert store.find_by_hash(HASH) is None
        assert store.find_by_address(ADDRESS) is None

    def test_find_existing_matches_either_key(self, store, record) -> None:
        store.insert(record)

        assert store.find_existing(HASH, OTHER_ADDRESS) is not None
        assert store.find_existing(OTHER_HASH, ADDRESS) is not None
        assert store.find_existing(OTHER_HASH, OTHER_ADDRESS) is None

    def test_duplicate_hash_rejected(self, store, record) -> None:
        store.insert(record)

        with pytest.raises(AlreadyRegistered):
            store.insert(replace(record, address=OTHER_ADDRESS))

    def test_duplicate_address_rejected(self, store, record) -> None:
        store.insert(record)

        with pytest.raises(AlreadyRegistered):
            store.insert(replace(record, account_hash=OTHER_HASH))

    def test_to_dict_uses_api_names(self, store, record) -> None:
        data = store.insert(record).to_dict()

        assert data["accountIdentifierHash"] == HASH
        assert data["isRegistered"] is True
        assert data["hasVoted"] is False
        assert data["votedAt"] is None


class TestMarkVoted:
    def test_flips_once(self, store, record) -> None:
        before = store.insert(record)

        after = store.mark_voted(ADDRESS, vote_tx="0x" + "02" * 32)

        assert after.has_voted is True
        assert after.vote_tx == "0x" + "02" * 32
        assert after.voted_at is not None
        assert replace(after, has_voted=False, vote_tx=None, voted_at=None) == before

    def test_second_flip_rejected(self, store, record) -> None:
        store.insert(record)
        store.mark_voted(ADDRESS)

        with pytest.raises(AlreadyVoted):
            store.mark_voted(ADDRESS)
        assert store.find_by_address(ADDRESS).has_voted is True

    def test_unknown_address(self, store) -> None:
        with pytest.raises(NotRegistered):
            store.mark_voted(ADDRESS)


class TestHealth:
    def test_ping_and_count(self, store, record) -> None:
        assert store.ping() is True
        assert store.count() == 0
        store.insert(record)
        assert store.count() == 1

    def test_unreachable_store(self, tmp_path) -> None:
        engine = make_engine(f"sqlite:///{tmp_path / 'missing' / 'voters.db'}")
        broken = VoterRecordStore(sessionmaker(bind=engine))

        with pytest.raises(StoreUnavailable):
            broken.ping()
        with pytest.raises(StoreUnavailable):
            broken.find_by_address(ADDRESS)
