# backend/store.py
"""
VoterRecordStore: durable off-chain projection of voter state.

Records are written once after on-chain registration confirms and updated
once when a vote confirms. Unique constraints on account_hash and address
are the persistent guard against double registration.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backend.errors import AlreadyRegistered, AlreadyVoted, NotRegistered, StoreUnavailable
from backend.models import Voter


@dataclass(frozen=True)
class VoterRecord:
    username: str
    account_hash: str
    constituency: str
    address: str
    is_registered: bool = False
    has_voted: bool = False
    registration_tx: str | None = None
    vote_tx: str | None = None
    registered_at: datetime | None = None
    voted_at: datetime | None = None

    @classmethod
    def from_row(cls, row):
        return cls(
            username=row.username,
            account_hash=row.account_hash,
            constituency=row.constituency,
            address=row.address,
            is_registered=row.is_registered,
            has_voted=row.has_voted,
            registration_tx=row.registration_tx,
            vote_tx=row.vote_tx,
            registered_at=row.registered_at,
            voted_at=row.voted_at,
        )

    def to_dict(self):
        return {
            "username": self.username,
            "accountIdentifierHash": self.account_hash,
            "constituency": self.constituency,
            "address": self.address,
            "isRegistered": self.is_registered,
            "hasVoted": self.has_voted,
            "registrationTx": self.registration_tx,
            "voteTx": self.vote_tx,
            "registeredAt": self.registered_at.isoformat() if self.registered_at else None,
            "votedAt": self.voted_at.isoformat() if self.voted_at else None,
        }


class VoterRecordStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        try:
            with self._session_factory() as db:
                yield db
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Voter store unavailable: {e.__class__.__name__}") from e

    def find_by_hash(self, account_hash):
        with self._session() as db:
            row = db.execute(
                select(Voter).filter_by(account_hash=account_hash)
            ).scalar_one_or_none()
            return VoterRecord.from_row(row) if row else None

    def find_by_address(self, address):
        with self._session() as db:
            row = db.execute(select(Voter).filter_by(address=address)).scalar_one_or_none()
            return VoterRecord.from_row(row) if row else None

    def find_existing(self, account_hash, address):
        """First record holding either unique key, or None."""
        with self._session() as db:
            row = db.execute(
                select(Voter)
                .where(or_(Voter.account_hash == account_hash, Voter.address == address))
                .limit(1)
            ).scalar_one_or_none()
            return VoterRecord.from_row(row) if row else None

    def insert(self, record):
        row = Voter(
            username=record.username,
            account_hash=record.account_hash,
            constituency=record.constituency,
            address=record.address,
            is_registered=record.is_registered,
            has_voted=record.has_voted,
            registration_tx=record.registration_tx,
            registered_at=record.registered_at or datetime.utcnow(),
        )
        try:
            with self._session() as db:
                db.add(row)
                db.commit()
                return VoterRecord.from_row(row)
        except IntegrityError as e:
            raise AlreadyRegistered("Account number hash or address is already registered") from e

    def mark_voted(self, address, vote_tx=None):
        """Flip has_voted false -> true. Never resets it."""
        with self._session() as db:
            result = db.execute(
                update(Voter)
                .where(Voter.address == address, Voter.has_voted.is_(False))
                .values(has_voted=True, vote_tx=vote_tx, voted_at=datetime.utcnow())
            )
            db.commit()
            if result.rowcount == 0:
                exists = db.execute(select(Voter.id).filter_by(address=address)).first()
                if not exists:
                    raise NotRegistered("Voter is not registered")
                raise AlreadyVoted("Voter has already voted")
            row = db.execute(select(Voter).filter_by(address=address)).scalar_one()
            return VoterRecord.from_row(row)

    def ping(self):
        with self._session() as db:
            db.execute(text("SELECT 1"))
        return True

    def count(self):
        with self._session() as db:
            return db.execute(select(func.count(Voter.id))).scalar_one()
