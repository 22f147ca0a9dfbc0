"""
External collaborators consumed by the attestation coordinator.

The coordinator never talks to a wallet or an RPC node directly. It depends
on three narrow interfaces:

- ChainClient: submits attestations, waits for receipts, reads records
- MessageSigner: signs an off-chain attestation message
- SchemaRegistry: tells whether a schema UID is registered

All calls that can suspend are coroutines so the coordinator can bound them
with asyncio.wait_for.

For development and tests this module also provides:
1. LocalMessageSigner (secp256k1 key held in memory)
2. InMemoryChainClient (simulated EAS chain with failure injection)
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set, runtime_checkable

from calibr.crypto import (
    ZERO_HASH,
    KeyPair,
    bytes_to_hex,
    hex_to_bytes,
    keccak256,
    sign_message,
)
from calibr.utils.logger import get_logger, short_hex

logger = get_logger("chain")


# =============================================================================
# Constants
# =============================================================================

# Attested(address indexed recipient, address indexed attester, bytes32 uid, bytes32 indexed schemaUID)
ATTESTED_EVENT_TOPIC = "0x8bf46bf4cfd674fa735a3d63ec1c9ad4153f033c290341f3a588b75685141b35"

# Revoked(address indexed recipient, address indexed attester, bytes32 uid, bytes32 indexed schemaUID)
REVOKED_EVENT_TOPIC = bytes_to_hex(keccak256(b"Revoked(address,address,bytes32,bytes32)"))

# EAS predeploy on OP-stack chains (Base, Base Sepolia)
EAS_CONTRACT_ADDRESS = "0x4200000000000000000000000000000000000021"

ZERO_UID = bytes_to_hex(ZERO_HASH)


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class AttestationRequest:
    """Payload of an EAS attest() call."""
    schema_uid: str
    recipient: str
    data: bytes
    expiration_time: int = 0
    revocable: bool = True
    ref_uid: str = ZERO_UID
    value: int = 0


@dataclass
class RevocationRequest:
    """Payload of an EAS revoke() call."""
    schema_uid: str
    uid: str
    value: int = 0


@dataclass
class LogEntry:
    """One event log of a transaction receipt."""
    address: str
    topics: List[str]
    data: bytes


@dataclass
class AttestationRecord:
    """An attestation as stored by the EAS contract."""
    uid: str
    schema: str
    time: int
    expiration_time: int
    revocation_time: int
    ref_uid: str
    recipient: str
    attester: str
    revocable: bool
    data: bytes

    @property
    def revoked(self) -> bool:
        return self.revocation_time != 0

    def is_valid(self, now: Optional[int] = None) -> bool:
        """Not revoked and not expired."""
        if self.revoked:
            return False
        now = int(time.time()) if now is None else now
        return self.expiration_time == 0 or self.expiration_time > now


def _find_event_uid(logs: List[LogEntry], topic: str) -> Optional[str]:
    for log in logs:
        if log.topics and log.topics[0].lower() == topic and len(log.data) >= 32:
            return bytes_to_hex(log.data[:32])
    return None


def find_attested_uid(logs: List[LogEntry]) -> Optional[str]:
    """Extract the attestation UID from the Attested event, if present."""
    return _find_event_uid(logs, ATTESTED_EVENT_TOPIC)


def find_revoked_uid(logs: List[LogEntry]) -> Optional[str]:
    """UID named by the Revoked event, if present."""
    return _find_event_uid(logs, REVOKED_EVENT_TOPIC)


# =============================================================================
# Interfaces
# =============================================================================


@runtime_checkable
class ChainClient(Protocol):
    """Connected wallet + RPC access to the EAS contract."""

    @property
    def account(self) -> Optional[str]:
        """Connected account address, or None if no wallet is connected."""
        ...

    async def submit_attestation(self, request: AttestationRequest) -> bytes:
        """Send attest(); returns the transaction hash."""
        ...

    async def wait_for_receipt(self, tx_hash: bytes) -> List[LogEntry]:
        """Wait for inclusion; returns the receipt logs."""
        ...

    async def read_attestation(self, uid: str) -> Optional[AttestationRecord]:
        """Fetch a stored attestation, or None if unknown."""
        ...

    async def revoke_attestation(self, request: RevocationRequest) -> bytes:
        """Send revoke(); returns the transaction hash."""
        ...


@runtime_checkable
class MessageSigner(Protocol):
    """Wallet able to sign personal messages."""

    @property
    def address(self) -> Optional[str]:
        ...

    async def sign(self, message: str) -> bytes:
        """Sign a message; returns a 65-byte signature."""
        ...


@runtime_checkable
class SchemaRegistry(Protocol):
    async def schema_exists(self, uid: str) -> bool:
        ...


# =============================================================================
# Local Signer
# =============================================================================


class LocalMessageSigner:
    """
    MessageSigner backed by an in-memory secp256k1 key.

    Produces the same EIP-191 signatures as a browser wallet.
    """

    def __init__(self, keypair: KeyPair):
        self.keypair = keypair

    @property
    def address(self) -> str:
        return self.keypair.address

    async def sign(self, message: str) -> bytes:
        return sign_message(message, self.keypair.private_key)


# =============================================================================
# In-Memory Chain (Simulated EAS)
# =============================================================================


class InMemoryChainClient:
    """
    Simulated EAS deployment for development and testing.

    Implements ChainClient and SchemaRegistry. Attestations are stored in a
    dict and receipts carry a well-formed Attested or Revoked log, so the coordinator
    exercises the same code path as against a real chain.

    Failure injection:
        submit_error: exception raised by submit_attestation and revoke_attestation
        receipt_error: exception raised by wait_for_receipt
        receipt_delay: seconds to sleep before returning a receipt
    """

    def __init__(
        self,
        account: Optional[str] = None,
        registered_schemas: Optional[Set[str]] = None,
        receipt_delay: float = 0.0,
        clock: Callable[[], float] = time.time,
    ):
        self._account = account
        self.registered_schemas: Set[str] = {s.lower() for s in (registered_schemas or set())}
        self.receipt_delay = receipt_delay
        self.clock = clock

        self.submit_error: Optional[Exception] = None
        self.receipt_error: Optional[Exception] = None

        self.records: Dict[str, AttestationRecord] = {}
        self.submitted: List[AttestationRequest] = []
        self.revocations: List[RevocationRequest] = []
        self._receipts: Dict[bytes, List[LogEntry]] = {}
        self._nonce = 0

    @property
    def account(self) -> Optional[str]:
        return self._account

    def connect(self, account: str) -> None:
        self._account = account

    def register_schema(self, uid: str) -> None:
        self.registered_schemas.add(uid.lower())

    async def schema_exists(self, uid: str) -> bool:
        return uid.lower() in self.registered_schemas

    async def submit_attestation(self, request: AttestationRequest) -> bytes:
        if self._account is None:
            raise RuntimeError("No account connected")
        if self.submit_error is not None:
            raise self.submit_error

        self._nonce += 1
        now = int(self.clock())
        uid_bytes = keccak256(
            hex_to_bytes(request.schema_uid)
            + hex_to_bytes(request.recipient)
            + hex_to_bytes(self._account)
            + now.to_bytes(8, "big")
            + self._nonce.to_bytes(8, "big")
            + request.data
        )
        uid = bytes_to_hex(uid_bytes)
        tx_hash = keccak256(b"tx" + uid_bytes)

        self.records[uid] = AttestationRecord(
            uid=uid,
            schema=request.schema_uid,
            time=now,
            expiration_time=request.expiration_time,
            revocation_time=0,
            ref_uid=request.ref_uid,
            recipient=request.recipient,
            attester=self._account,
            revocable=request.revocable,
            data=request.data,
        )
        self.submitted.append(request)
        self._receipts[tx_hash] = [
            LogEntry(
                address=EAS_CONTRACT_ADDRESS,
                topics=[
                    ATTESTED_EVENT_TOPIC,
                    bytes_to_hex(bytes(12) + hex_to_bytes(request.recipient)),
                    bytes_to_hex(bytes(12) + hex_to_bytes(self._account)),
                    request.schema_uid,
                ],
                data=uid_bytes,
            )
        ]

        logger.debug(f"Simulated attest(): uid={short_hex(uid)} tx={short_hex(tx_hash)}")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: bytes) -> List[LogEntry]:
        if self.receipt_delay:
            await asyncio.sleep(self.receipt_delay)
        if self.receipt_error is not None:
            raise self.receipt_error
        if tx_hash not in self._receipts:
            raise LookupError(f"Unknown transaction {bytes_to_hex(tx_hash)}")
        return self._receipts[tx_hash]

    async def read_attestation(self, uid: str) -> Optional[AttestationRecord]:
        return self.records.get(uid.lower())

    def revoke(self, uid: str) -> None:
        record = self.records[uid.lower()]
        if not record.revocable:
            raise ValueError("Attestation is not revocable")
        record.revocation_time = int(self.clock())

    async def revoke_attestation(self, request: RevocationRequest) -> bytes:
        if self._account is None:
            raise RuntimeError("No account connected")
        if self.submit_error is not None:
            raise self.submit_error

        record = self.records.get(request.uid.lower())
        if record is None:
            raise LookupError(f"Unknown attestation {request.uid}")
        if record.schema.lower() != request.schema_uid.lower():
            raise ValueError("Attestation belongs to a different schema")
        if record.attester.lower() != self._account.lower():
            raise PermissionError("Only the attester can revoke")
        if record.revoked:
            raise ValueError("Attestation is already revoked")
        self.revoke(record.uid)

        self._nonce += 1
        uid_bytes = hex_to_bytes(record.uid)
        tx_hash = keccak256(b"revoke" + uid_bytes + self._nonce.to_bytes(8, "big"))
        self.revocations.append(request)
        self._receipts[tx_hash] = [
            LogEntry(
                address=EAS_CONTRACT_ADDRESS,
                topics=[
                    REVOKED_EVENT_TOPIC,
                    bytes_to_hex(bytes(12) + hex_to_bytes(record.recipient)),
                    bytes_to_hex(bytes(12) + hex_to_bytes(record.attester)),
                    record.schema,
                ],
                data=uid_bytes,
            )
        ]

        logger.debug(f"Simulated revoke(): uid={short_hex(record.uid)} tx={short_hex(tx_hash)}")
        return tx_hash


__all__ = [
    "ATTESTED_EVENT_TOPIC",
    "AttestationRequest",
    "LogEntry",
    "AttestationRecord",
    "REVOKED_EVENT_TOPIC",
    "EAS_CONTRACT_ADDRESS",
    "RevocationRequest",
    "find_attested_uid",
    "find_revoked_uid",
    "ChainClient",
    "MessageSigner",
    "SchemaRegistry",
    "LocalMessageSigner",
    "InMemoryChainClient",
]
