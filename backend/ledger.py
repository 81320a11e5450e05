# backend/ledger.py
"""
LedgerGateway: every interaction with the Voting contract.

Writes go through submit(): estimate gas, pad the estimate, sign with the
service account, send, then block until the receipt arrives or the
confirmation timeout runs out. Failures are classified so coordinators can
tell a permanent rejection from a retryable one from an unknown outcome.
"""

import json
import logging
import os
import re
import threading
from dataclasses import dataclass

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from backend.errors import (
    EstimationFailed,
    Indeterminate,
    LedgerUnavailable,
    Reverted,
    SubmissionFailed,
)

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
BUNDLED_ABI_PATH = os.path.join(BASE_DIR, "abi", "Voting.json")

REGISTER_VOTER = "registerVoter"
CAST_VOTE = "castVote"
ADD_CANDIDATE = "addCandidate"

TX_PENDING = "pending"
TX_CONFIRMED = "confirmed"
TX_REVERTED = "reverted"
TX_DROPPED = "dropped"


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    block_number: int
    gas_used: int
    status: int = 1


def load_abi(abi_path=""):
    """ABI from a compiled artifact (list or {"abi": [...]}) or the bundled one."""
    with open(abi_path or BUNDLED_ABI_PATH, "r", encoding="utf-8") as f:
        contract_json = json.load(f)
    return contract_json if isinstance(contract_json, list) else contract_json.get("abi")


def error_reason(e):
    """Best-effort human reason out of a web3 / node error."""
    err = e.args[0] if e.args else None
    if isinstance(err, dict):
        reason = ""
        # Try nested data.reason first (Ganache revert reason)
        data = err.get("data", {})
        if isinstance(data, dict):
            reason = data.get("reason") or data.get("message") or ""
        return reason or err.get("message", "") or "Blockchain error"

    err_str = str(e)
    match = re.search(r"revert(?:ed)?:? (.+?)(?:'|$)", err_str, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return err_str or e.__class__.__name__


class LedgerGateway:
    def __init__(
        self,
        w3,
        contract,
        private_key,
        register_gas_buffer=3000,
        vote_gas_percent=120,
        confirmation_timeout=60,
        poll_latency=0.5,
    ):
        self.w3 = w3
        self.contract = contract
        self._private_key = private_key
        self.account = Account.from_key(private_key).address
        self.register_gas_buffer = register_gas_buffer
        self.vote_gas_percent = vote_gas_percent
        self.confirmation_timeout = confirmation_timeout
        self.poll_latency = poll_latency
        # nonce allocation + send must not interleave between request threads
        self._nonce_lock = threading.Lock()

    @classmethod
    def from_config(cls, rpc_url, contract_address, private_key, abi_path="", **kwargs):
        if not contract_address:
            raise ValueError("CONTRACT_ADDRESS is required")
        if not private_key:
            raise ValueError("ADMIN_PRIVATE_KEY is required")
        w3 = Web3(Web3.HTTPProvider(rpc_url))
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=load_abi(abi_path),
        )
        return cls(w3, contract, private_key, **kwargs)

    @property
    def contract_address(self):
        return self.contract.address

    # ---------------------------------------------------------
    #   WRITES
    # ---------------------------------------------------------
    def gas_limit(self, operation, estimate):
        if operation == REGISTER_VOTER:
            return estimate + self.register_gas_buffer
        return estimate * self.vote_gas_percent // 100

    def submit(self, operation, *params):
        fn = getattr(self.contract.functions, operation)(*params)
        estimate = self._estimate(operation, fn)
        gas = self.gas_limit(operation, estimate)
        tx_hash = self._send(operation, fn, gas)
        return self._wait(operation, tx_hash)

    def register_voter(self, constituency, account_hash, signature):
        return self.submit(
            REGISTER_VOTER,
            constituency,
            Web3.to_bytes(hexstr=account_hash),
            Web3.to_bytes(hexstr=signature),
        )

    def cast_vote(self, candidate_name):
        return self.submit(CAST_VOTE, candidate_name)

    def add_candidate(self, candidate_name):
        return self.submit(ADD_CANDIDATE, candidate_name)

    def _estimate(self, operation, fn):
        try:
            return fn.estimate_gas({"from": self.account})
        except ContractLogicError as e:
            reason = error_reason(e)
            logger.info(f"{operation} reverts at gas estimation: {reason}")
            raise EstimationFailed(reason) from e
        except Exception as e:
            reason = error_reason(e)
            if "revert" in str(e).lower():
                logger.info(f"{operation} reverts at gas estimation: {reason}")
                raise EstimationFailed(reason) from e
            logger.warning(f"{operation} gas estimation failed: {reason}")
            raise SubmissionFailed(reason) from e

    def _send(self, operation, fn, gas):
        with self._nonce_lock:
            try:
                nonce = self.w3.eth.get_transaction_count(self.account, "pending")
                tx = fn.build_transaction({
                    "from": self.account,
                    "nonce": nonce,
                    "gas": gas,
                })
                signed = self.w3.eth.account.sign_transaction(tx, private_key=self._private_key)
                tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            except Exception as e:
                reason = error_reason(e)
                logger.warning(f"{operation} submission failed: {reason}")
                raise SubmissionFailed(reason) from e
        tx_hash = Web3.to_hex(tx_hash)
        logger.info(f"{operation} sent: tx={tx_hash} nonce={nonce} gas={gas}")
        return tx_hash

    def _wait(self, operation, tx_hash):
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout, poll_latency=self.poll_latency
            )
        except TimeExhausted as e:
            logger.error(f"{operation} tx={tx_hash} not confirmed within {self.confirmation_timeout}s")
            raise Indeterminate(
                f"Transaction {tx_hash} not confirmed within {self.confirmation_timeout}s",
                tx_hash=tx_hash,
            ) from e
        except Exception as e:
            logger.error(f"{operation} tx={tx_hash} lost while waiting for receipt: {e}")
            raise Indeterminate(
                f"Lost track of transaction {tx_hash}: {error_reason(e)}", tx_hash=tx_hash
            ) from e

        if receipt["status"] == 0:
            logger.warning(f"{operation} tx={tx_hash} reverted in block {receipt['blockNumber']}")
            raise Reverted(f"{operation} reverted in block {receipt['blockNumber']}")

        logger.info(f"{operation} tx={tx_hash} confirmed in block {receipt['blockNumber']}")
        return Receipt(
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed", 0),
            status=receipt["status"],
        )

    # ---------------------------------------------------------
    #   READS
    # ---------------------------------------------------------
    def get_candidate_list(self):
        try:
            return list(self.contract.functions.getCandidateList().call())
        except Exception as e:
            raise LedgerUnavailable(f"Could not read candidate list: {error_reason(e)}") from e

    def contract_code(self):
        """Deployed bytecode at the contract address as hex ('0x' when absent)."""
        try:
            return Web3.to_hex(self.w3.eth.get_code(self.contract.address))
        except Exception as e:
            raise LedgerUnavailable(f"Could not read contract code: {error_reason(e)}") from e

    def has_code(self):
        return self.contract_code() != "0x"

    def transaction_status(self, tx_hash):
        """Where an earlier transaction stands: mined (either way), waiting, or gone."""
        try:
            try:
                receipt = self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            if receipt is not None:
                return TX_CONFIRMED if receipt["status"] == 1 else TX_REVERTED
            try:
                self.w3.eth.get_transaction(tx_hash)
            except TransactionNotFound:
                return TX_DROPPED
            return TX_PENDING
        except Exception as e:
            raise LedgerUnavailable(
                f"Could not look up transaction {tx_hash}: {error_reason(e)}"
            ) from e

    def snapshot(self):
        try:
            balance = self.w3.eth.get_balance(self.account)
            return {
                "connected": bool(self.w3.is_connected()),
                "chainId": self.w3.eth.chain_id,
                "blockNumber": self.w3.eth.block_number,
                "walletAddress": self.account,
                "balance": str(Web3.from_wei(balance, "ether")),
            }
        except Exception as e:
            raise LedgerUnavailable(f"Ledger node unreachable: {error_reason(e)}") from e
