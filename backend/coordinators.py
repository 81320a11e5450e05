# backend/coordinators.py
"""
Registration and voting flows across the contract and the voter store.

The contract is the commit point. The store is only written after a
transaction confirms, and a store failure after that point is reported as
PartialCommit so the off-chain projection can be reconciled from chain
state instead of the registration or vote silently disappearing.

Voter lifecycle: Unregistered -> Registered -> Voted, forward only.
"""

import logging
from dataclasses import dataclass, replace

from backend.dedup import DedupIndex, KeyedLocks
from backend.errors import (
    AlreadyRegistered,
    AlreadyVoted,
    Indeterminate,
    LedgerError,
    LedgerRejected,
    MalformedRequest,
    NotRegistered,
    PartialCommit,
    UnknownCandidate,
)
from backend.identity import (
    IdentityVerifier,
    hash_account_identifier,
    normalize_address,
    validate_claim,
)
from backend.ledger import TX_CONFIRMED, TX_PENDING
from backend.store import VoterRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteRequest:
    address: str
    candidate_name: str

    @classmethod
    def from_json(cls, data):
        data = data or {}
        return cls(address=data.get("address"), candidate_name=data.get("candidateName"))


@dataclass(frozen=True)
class RegistrationResult:
    voter: VoterRecord
    tx_hash: str
    message: str = "Voter registered successfully"


@dataclass(frozen=True)
class VoteResult:
    voter: VoterRecord
    tx_hash: str
    candidate_name: str
    message: str = "Vote cast successfully"


class RegistrationCoordinator:
    def __init__(self, store, ledger, verifier=None, dedup=None):
        self.store = store
        self.ledger = ledger
        self.verifier = verifier or IdentityVerifier()
        self.dedup = dedup if dedup is not None else DedupIndex()

    def register(self, claim):
        claim = validate_claim(claim)
        account_hash = hash_account_identifier(claim.account_identifier)
        keys = (("account", account_hash), ("address", claim.address))

        if self.store.find_existing(account_hash, claim.address) is not None:
            raise AlreadyRegistered("Account number hash is already registered")

        self.verifier.verify(claim)

        pending = self.dedup.pending(*keys)
        if pending is not None:
            self._reconcile(pending)

        record = VoterRecord(
            username=claim.username,
            account_hash=account_hash,
            constituency=claim.constituency,
            address=claim.address,
            is_registered=True,
            has_voted=False,
        )
        reservation = self.dedup.reserve(*keys)
        try:
            receipt = self.ledger.register_voter(claim.constituency, account_hash, claim.signature)
        except Indeterminate as e:
            # reservation stays held until the transaction is reconciled
            reservation.hold_pending(e.tx_hash, record)
            logger.error(f"Registration of {claim.address} indeterminate: {e.reason}")
            raise
        except LedgerError as e:
            reservation.release()
            logger.warning(f"Registration of {claim.address} rejected ({e.kind}): {e.reason}")
            raise LedgerRejected.from_ledger_error(e) from e
        except Exception:
            reservation.release()
            raise

        record = self._persist(replace(record, registration_tx=receipt.tx_hash), reservation, receipt)
        logger.info(f"Voter {claim.address} registered in {claim.constituency}, tx {receipt.tx_hash}")
        return RegistrationResult(voter=record, tx_hash=receipt.tx_hash)

    def _persist(self, record, reservation, receipt):
        try:
            record = self.store.insert(record)
        except Exception as e:
            reservation.release()
            logger.error(
                f"PARTIAL COMMIT: {record.address} (account {record.account_hash}) registered on-chain "
                f"in tx {receipt.tx_hash} block {receipt.block_number} but not stored: {e}"
            )
            raise PartialCommit(
                "Voter registered on-chain but could not be recorded; reconciliation required",
                tx_hash=receipt.tx_hash,
            ) from e
        return record

    def _reconcile(self, pending):
        """Settle a registration whose confirmation wait timed out."""
        tx_hash = pending.tx_hash
        status = self.ledger.transaction_status(tx_hash)
        if status == TX_PENDING:
            raise Indeterminate(f"Registration transaction {tx_hash} is still pending", tx_hash=tx_hash)

        if status == TX_CONFIRMED:
            record = replace(pending.record, registration_tx=tx_hash)
            try:
                self.store.insert(record)
            except AlreadyRegistered:
                pass
            except Exception as e:
                pending.release()
                logger.error(
                    f"PARTIAL COMMIT: {record.address} (account {record.account_hash}) registered "
                    f"on-chain in tx {tx_hash} but not stored: {e}"
                )
                raise PartialCommit(
                    "Voter registered on-chain but could not be recorded; reconciliation required",
                    tx_hash=tx_hash,
                ) from e
            pending.commit()
            logger.info(f"Pending registration {tx_hash} confirmed, voter {record.address} recorded")
            raise AlreadyRegistered("Account number hash is already registered")

        pending.release()
        logger.warning(f"Pending registration {tx_hash} {status}, reservation released")


class VotingCoordinator:
    def __init__(self, store, ledger, locks=None):
        self.store = store
        self.ledger = ledger
        self.locks = locks if locks is not None else KeyedLocks()
        # address -> tx hash of a vote whose outcome is unknown
        self.pending_votes = {}

    def vote(self, request):
        address = normalize_address(request.address)
        candidate_name = request.candidate_name
        if address is None or not isinstance(candidate_name, str) or not candidate_name.strip():
            raise MalformedRequest("Invalid address or candidate name")

        with self.locks.hold(address):
            tx_hash = self.pending_votes.get(address)
            if tx_hash is not None:
                self._reconcile(address, tx_hash)

            voter = self.store.find_by_address(address)
            if voter is None or not voter.is_registered:
                raise NotRegistered("Voter is not registered")
            # advisory; the contract enforces vote-once itself
            if voter.has_voted:
                raise AlreadyVoted("Voter has already voted")

            if candidate_name not in self.ledger.get_candidate_list():
                raise UnknownCandidate("Candidate does not exist")

            try:
                receipt = self.ledger.cast_vote(candidate_name)
            except Indeterminate as e:
                if e.tx_hash:
                    self.pending_votes[address] = e.tx_hash
                logger.error(f"Vote from {address} indeterminate: {e.reason}")
                raise
            except LedgerError as e:
                logger.warning(f"Vote from {address} rejected ({e.kind}): {e.reason}")
                raise LedgerRejected.from_ledger_error(e) from e

            voter = self._mark_voted(address, receipt.tx_hash, receipt.block_number)

        logger.info(f"Vote from {address} cast, tx {receipt.tx_hash}")
        return VoteResult(voter=voter, tx_hash=receipt.tx_hash, candidate_name=candidate_name)

    def _mark_voted(self, address, tx_hash, block_number=None):
        try:
            return self.store.mark_voted(address, tx_hash)
        except AlreadyVoted:
            raise
        except Exception as e:
            logger.error(
                f"PARTIAL COMMIT: vote from {address} mined in tx {tx_hash} "
                f"block {block_number} but not stored: {e}"
            )
            raise PartialCommit(
                "Vote cast on-chain but could not be recorded; reconciliation required",
                tx_hash=tx_hash,
            ) from e

    def _reconcile(self, address, tx_hash):
        """Settle a vote whose confirmation wait timed out. Caller holds the address lock."""
        status = self.ledger.transaction_status(tx_hash)
        if status == TX_PENDING:
            raise Indeterminate(f"Vote transaction {tx_hash} is still pending", tx_hash=tx_hash)

        del self.pending_votes[address]
        if status == TX_CONFIRMED:
            try:
                self._mark_voted(address, tx_hash)
            except AlreadyVoted:
                pass
            logger.info(f"Pending vote {tx_hash} from {address} confirmed and recorded")
            raise AlreadyVoted("Voter has already voted")

        logger.warning(f"Pending vote {tx_hash} from {address} {status}, vote may be retried")
