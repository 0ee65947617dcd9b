"""Transfer messages, partial signing and wire envelopes.

A transfer is a canonical JSON message (sorted keys, compact separators)
listing its instructions, fee payer, sequencing token and an optional
memo. Each required signer adds a detached Ed25519 signature over those
exact bytes. The wire form is base64 of
``{"message": <b64>, "signatures": {address: sig_b58}}`` and may be
missing signatures while it is only partially signed.
"""

from __future__ import annotations

import base64
import json
from typing import Annotated, Literal, NewType, Optional, Union

import base58
from cryptography.exceptions import InvalidSignature
from pydantic import BaseModel, Field

from .stealth import Ed25519Signer, load_verifier

TransferB64 = NewType("TransferB64", str)


# Instructions


class CreateAssetAccount(BaseModel):
    """Create ``account`` for ``owner`` holding ``asset_id``; ``payer`` funds it."""

    kind: Literal["create_asset_account"] = "create_asset_account"
    payer: str
    account: str
    owner: str
    asset_id: str


class TransferNative(BaseModel):
    kind: Literal["transfer_native"] = "transfer_native"
    source: str
    destination: str
    amount: int


class TransferAsset(BaseModel):
    kind: Literal["transfer_asset"] = "transfer_asset"
    source_account: str
    destination_account: str
    authority: str
    amount: int


class CloseAssetAccount(BaseModel):
    """Close an empty asset account, refunding its deposit to ``beneficiary``."""

    kind: Literal["close_asset_account"] = "close_asset_account"
    account: str
    beneficiary: str
    authority: str


Instruction = Annotated[
    Union[CreateAssetAccount, TransferNative, TransferAsset, CloseAssetAccount],
    Field(discriminator="kind"),
]


# Transfer plans


class NativeTransfer(BaseModel):
    """Native-asset move. ``amount`` is what actually leaves ``source``."""

    kind: Literal["native"] = "native"
    source: str
    destination: str
    requested_amount: int
    amount: int
    fee_buffer_withheld: int = 0


class AssetTransfer(BaseModel):
    """Asset-account move, optionally closing the drained source account."""

    kind: Literal["asset"] = "asset"
    asset_id: str
    owner: str
    destination: str
    source_account: str
    destination_account: str
    requested_amount: int
    amount: int
    creates_destination_account: bool = False
    closes_source_to: Optional[str] = None


TransferPlan = Annotated[
    Union[NativeTransfer, AssetTransfer], Field(discriminator="kind")
]


class TransferMessage(BaseModel):
    """Exactly the bytes every signer signs."""

    fee_payer: str
    sequencing_token: str
    instructions: list[Instruction]
    required_signers: list[str]
    memo: Optional[str] = None


class UnsignedTransfer(BaseModel):
    message: TransferMessage
    plan: TransferPlan

    @property
    def delivered_amount(self) -> int:
        return self.plan.amount

    def with_sequencing_token(self, token: str) -> "UnsignedTransfer":
        message = self.message.model_copy(update={"sequencing_token": token})
        return self.model_copy(update={"message": message})

    def with_memo(self, memo: str) -> "UnsignedTransfer":
        message = self.message.model_copy(update={"memo": memo})
        return self.model_copy(update={"message": message})


class SignedTransfer(BaseModel):
    message: TransferMessage
    signatures: dict[str, str] = Field(default_factory=dict)

    @property
    def missing_signers(self) -> list[str]:
        return [s for s in self.message.required_signers if s not in self.signatures]

    @property
    def is_fully_signed(self) -> bool:
        return not self.missing_signers


def json_to_bytes(data: dict) -> bytes:
    """Serialize dict to canonical JSON bytes for signing/verification."""
    return json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")


def message_bytes(message: TransferMessage) -> bytes:
    return json_to_bytes(message.model_dump(mode="json"))


def sign_transfer(
    transfer: Union[UnsignedTransfer, SignedTransfer], signer: Ed25519Signer
) -> SignedTransfer:
    """Add ``signer``'s signature. Signers not listed in the message are refused."""
    if signer.address not in transfer.message.required_signers:
        raise ValueError(f"{signer.address} is not a required signer")
    signatures = dict(getattr(transfer, "signatures", {}))
    signature = signer.sign(message_bytes(transfer.message))
    signatures[signer.address] = base58.b58encode(signature).decode("ascii")
    return SignedTransfer(message=transfer.message, signatures=signatures)


def transfer_ref(transfer: SignedTransfer) -> str:
    """The ledger reference of a transfer: its fee payer's signature."""
    try:
        return transfer.signatures[transfer.message.fee_payer]
    except KeyError:
        raise ValueError("Fee payer has not signed the transfer") from None


def is_signed_by(address: str, payload: bytes, signature_b58: str) -> bool:
    """True if ``signature_b58`` is ``address``'s Ed25519 signature over ``payload``."""
    try:
        load_verifier(address).verify(base58.b58decode(signature_b58), payload)
    except (InvalidSignature, ValueError):
        return False
    return True


def verify_transfer_signatures(transfer: SignedTransfer) -> bool:
    """Verify every present signature. Raises InvalidSignature on failure."""
    payload = message_bytes(transfer.message)
    for address, signature_b58 in transfer.signatures.items():
        verifier = load_verifier(address)
        try:
            verifier.verify(base58.b58decode(signature_b58), payload)
        except InvalidSignature:
            raise InvalidSignature(f"Bad signature from {address}")
    return True


def serialize_transfer(transfer: SignedTransfer) -> TransferB64:
    envelope = {
        "message": base64.b64encode(message_bytes(transfer.message)).decode("utf-8"),
        "signatures": transfer.signatures,
    }
    return TransferB64(base64.b64encode(json_to_bytes(envelope)).decode("utf-8"))


def deserialize_transfer(data: str) -> SignedTransfer:
    envelope = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
    message_raw = base64.b64decode(envelope["message"], validate=True)
    message = TransferMessage.model_validate_json(message_raw)
    return SignedTransfer(message=message, signatures=envelope.get("signatures", {}))
