# backend/errors.py
"""
Error taxonomy for registration and voting.

Every failure a coordinator can report is a VotingError carrying a stable
`kind` and a human-readable `reason`. The HTTP layer renders them as
{"error": reason, "kind": kind} without stack traces.
"""


class VotingError(Exception):
    """Base class for all coordinator-level failures."""

    kind = "VotingError"
    status_code = 400

    def __init__(self, reason=""):
        super().__init__(reason)
        self.reason = reason or self.kind

    def to_dict(self):
        return {"error": self.reason, "kind": self.kind}


# ---------------------------------------------------------
#   CLIENT INPUT
# ---------------------------------------------------------
class MalformedClaim(VotingError):
    kind = "MalformedClaim"


class MalformedRequest(VotingError):
    kind = "MalformedRequest"


class InvalidSignature(VotingError):
    kind = "InvalidSignature"


# ---------------------------------------------------------
#   BUSINESS RULES
# ---------------------------------------------------------
class AlreadyRegistered(VotingError):
    kind = "AlreadyRegistered"


class AlreadyVoted(VotingError):
    kind = "AlreadyVoted"


class NotRegistered(VotingError):
    kind = "NotRegistered"


class UnknownCandidate(VotingError):
    kind = "UnknownCandidate"


# ---------------------------------------------------------
#   LEDGER
# ---------------------------------------------------------
class LedgerError(VotingError):
    """Failure talking to the contract."""

    kind = "LedgerError"
    retryable = False


class EstimationFailed(LedgerError):
    """The call reverts at gas estimation; it would never succeed."""

    kind = "EstimationFailed"


class SubmissionFailed(LedgerError):
    """Network, nonce or balance trouble; safe to retry with fresh gas."""

    kind = "SubmissionFailed"
    retryable = True


class Reverted(LedgerError):
    """Mined, but execution failed."""

    kind = "Reverted"


class Indeterminate(LedgerError):
    """
    Confirmation wait timed out. The transaction may still be mined, so the
    caller must reconcile against chain state before submitting again.
    """

    kind = "Indeterminate"

    def __init__(self, reason="", tx_hash=None):
        super().__init__(reason)
        self.tx_hash = tx_hash

    def to_dict(self):
        data = super().to_dict()
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        return data


class LedgerUnavailable(LedgerError):
    """A read-only contract call or node query failed."""

    kind = "LedgerUnavailable"
    retryable = True


class LedgerRejected(VotingError):
    """Coordinator view of a ledger estimation, submission or revert failure."""

    kind = "LedgerRejected"

    def __init__(self, reason="", ledger_kind=None):
        super().__init__(reason)
        self.ledger_kind = ledger_kind

    @classmethod
    def from_ledger_error(cls, exc):
        return cls(exc.reason, ledger_kind=exc.kind)

    def to_dict(self):
        data = super().to_dict()
        if self.ledger_kind:
            data["ledgerKind"] = self.ledger_kind
        return data


# ---------------------------------------------------------
#   CROSS-SYSTEM
# ---------------------------------------------------------
class PartialCommit(VotingError):
    """
    The ledger confirmed the operation but the store could not record it.
    The chain is authoritative; the store must be reconciled from it.
    """

    kind = "PartialCommit"

    def __init__(self, reason="", tx_hash=None):
        super().__init__(reason)
        self.tx_hash = tx_hash

    def to_dict(self):
        data = super().to_dict()
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        return data


class StoreUnavailable(VotingError):
    kind = "StoreUnavailable"
