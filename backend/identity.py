# backend/identity.py
"""
Claim validation and signature checks for voter registration.

A registration claim is signed by the voter's wallet over
solidityKeccak(["address", "string"], [address, constituency]); the wallet
signs the raw 32 hash bytes as an EIP-191 personal message. Binding the
constituency into the signed payload stops a claim from being replayed in
another district.
"""

from dataclasses import dataclass

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from backend.errors import InvalidSignature, MalformedClaim

CLAIM_FIELDS = ("username", "account_identifier", "constituency", "address", "signature")


@dataclass(frozen=True)
class RegistrationClaim:
    username: str
    account_identifier: str
    constituency: str
    address: str
    signature: str

    @classmethod
    def from_json(cls, data):
        data = data or {}
        return cls(
            username=data.get("username"),
            account_identifier=data.get("accountIdentifier") or data.get("accountNumber"),
            constituency=data.get("constituency"),
            address=data.get("address"),
            signature=data.get("signature"),
        )


@dataclass(frozen=True)
class VerifiedIdentity:
    address: str
    constituency: str


def _blank(value):
    return not isinstance(value, str) or not value.strip()


def normalize_address(address):
    """Checksum form of a chain address, or None if it is not one."""
    if not isinstance(address, str) or not Web3.is_address(address):
        return None
    return Web3.to_checksum_address(address)


def validate_claim(claim):
    """Shape check; returns the claim with its address in checksum form."""
    missing = [name for name in CLAIM_FIELDS if _blank(getattr(claim, name))]
    if missing:
        raise MalformedClaim(
            "Username, account number, constituency, address, and signature are required"
        )
    address = normalize_address(claim.address.strip())
    if address is None:
        raise MalformedClaim(f"Invalid address: {claim.address}")
    return RegistrationClaim(
        username=claim.username.strip(),
        account_identifier=claim.account_identifier.strip(),
        constituency=claim.constituency,
        address=address,
        signature=claim.signature.strip(),
    )


def hash_account_identifier(account_identifier):
    """keccak256 of the UTF-8 account identifier as 0x-prefixed hex."""
    return Web3.to_hex(Web3.keccak(text=account_identifier))


def registration_message_hash(address, constituency):
    return Web3.solidity_keccak(
        ["address", "string"], [Web3.to_checksum_address(address), constituency]
    )


def sign_registration(private_key, constituency):
    """Sign a registration claim the way the voter's wallet does.

    Returns (address, signature_hex).
    """
    account = Account.from_key(private_key)
    message = encode_defunct(primitive=bytes(registration_message_hash(account.address, constituency)))
    signed = Account.sign_message(message, private_key=private_key)
    return account.address, Web3.to_hex(signed.signature)


class IdentityVerifier:
    def verify(self, claim):
        claim = validate_claim(claim)
        message = encode_defunct(
            primitive=bytes(registration_message_hash(claim.address, claim.constituency))
        )
        try:
            recovered = Account.recover_message(message, signature=claim.signature)
        except Exception as e:
            raise InvalidSignature("Signature could not be recovered") from e

        if recovered.lower() != claim.address.lower():
            raise InvalidSignature("Signature does not match address and constituency")
        return VerifiedIdentity(address=claim.address, constituency=claim.constituency)
