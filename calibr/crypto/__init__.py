"""
EVM-flavoured cryptography for Calibr.

Everything Calibr commits to (Merkle leaves and nodes, schema UIDs, off-chain
attestation UIDs, addresses) is hashed with Keccak-256 so it can be checked
against an EAS contract. Keys are secp256k1.

Signatures use the wallet ``personal_sign`` convention:

    digest = keccak256("\\x19Ethereum Signed Message:\\n" + str(len(msg)) + msg)
    signature = r (32) || s (32) || v (1), v in {27, 28}, s in the lower half

so a signature made by :class:`LocalMessageSigner` recovers the same way as one
made by a browser wallet.
"""

import hashlib
import secrets
import string
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"

HASH_LENGTH = 32
SIGNATURE_LENGTH = 65
PUBLIC_KEY_LENGTH = 64
ADDRESS_LENGTH = 20

ZERO_HASH = bytes(HASH_LENGTH)
ZERO_ADDRESS = "0x" + "00" * ADDRESS_LENGTH

_HEX_DIGITS = frozenset(string.hexdigits)


# -----------------------------------------------------------------------------
# Digests
# -----------------------------------------------------------------------------

def keccak256(data: bytes) -> bytes:
    """Keccak-256 as used by the EVM (pre-NIST padding, not SHA3-256)."""
    digest = keccak.new(digest_bits=256)
    digest.update(data)
    return digest.digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash_personal_message(message: Union[str, bytes]) -> bytes:
    """
    Digest a wallet-style personal message.

    Text is UTF-8 encoded first; the length in the prefix counts bytes,
    not characters.
    """
    payload = message.encode("utf-8") if isinstance(message, str) else bytes(message)
    return keccak256(PERSONAL_MESSAGE_PREFIX + str(len(payload)).encode("ascii") + payload)


# -----------------------------------------------------------------------------
# Keys and addresses
# -----------------------------------------------------------------------------

def _point_to_bytes(point: Tuple[int, int]) -> bytes:
    return point[0].to_bytes(32, "big") + point[1].to_bytes(32, "big")


def _check_private_key(private_key: bytes) -> None:
    if len(private_key) != 32:
        raise ValueError(f"Private key must be 32 bytes, got {len(private_key)}")
    if not 1 <= int.from_bytes(private_key, "big") < SECP256K1_ORDER:
        raise ValueError("Private key is outside the secp256k1 scalar range")


@dataclass
class KeyPair:
    """
    A secp256k1 account.

    ``public_key`` is the 64-byte x || y encoding (no 0x04 prefix), which is
    what the address is derived from.
    """
    private_key: bytes
    public_key: bytes

    @property
    def address(self) -> str:
        return public_key_to_address(self.public_key)

    @property
    def private_key_hex(self) -> str:
        return self.private_key.hex()

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    def __repr__(self) -> str:
        return f"KeyPair(address={self.address})"


def generate_keypair() -> KeyPair:
    """Fresh account from the OS CSPRNG."""
    scalar = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    return keypair_from_private_key(scalar.to_bytes(32, "big"))


def keypair_from_private_key(private_key: bytes) -> KeyPair:
    return KeyPair(private_key=bytes(private_key), public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    _check_private_key(private_key)
    return _point_to_bytes(secp256k1.privtopub(private_key))


def public_key_to_address(public_key: bytes) -> str:
    """Lower-case 0x address: the last 20 bytes of keccak256(x || y)."""
    return "0x" + keccak256(public_key)[-ADDRESS_LENGTH:].hex()


# -----------------------------------------------------------------------------
# Signatures
# -----------------------------------------------------------------------------

def sign(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a 32-byte digest.

    Args:
        message_hash: Digest to sign (see hash_personal_message)
        private_key: 32-byte secp256k1 scalar

    Returns:
        r || s || v with v in {27, 28}; py_ecc already normalises s to the low half
    """
    if len(message_hash) != HASH_LENGTH:
        raise ValueError(f"Digest must be {HASH_LENGTH} bytes, got {len(message_hash)}")
    _check_private_key(private_key)

    v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)
    return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])


def recover_public_key(message_hash: bytes, signature: bytes) -> Optional[bytes]:
    """
    Public key that produced ``signature`` over ``message_hash``.

    A recovery id of 0/1 is accepted as well as 27/28. Anything malformed
    yields None rather than an exception.
    """
    if len(message_hash) != HASH_LENGTH or len(signature) != SIGNATURE_LENGTH:
        return None

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64] + 27 if signature[64] < 27 else signature[64]
    if v not in (27, 28) or not (0 < r < SECP256K1_ORDER and 0 < s < SECP256K1_ORDER):
        return None

    try:
        point = secp256k1.ecdsa_raw_recover(message_hash, (v, r, s))
    except (ValueError, ZeroDivisionError):
        return None
    return _point_to_bytes(point) if point else None


def verify(message_hash: bytes, signature: bytes, public_key: bytes) -> bool:
    if len(public_key) != PUBLIC_KEY_LENGTH:
        return False
    return recover_public_key(message_hash, signature) == public_key


def sign_message(message: Union[str, bytes], private_key: bytes) -> bytes:
    """personal_sign equivalent; returns the 65-byte signature."""
    return sign(hash_personal_message(message), private_key)


def recover_message_signer(message: Union[str, bytes], signature: bytes) -> Optional[str]:
    """Address that personal-signed ``message``, or None for a bad signature."""
    public_key = recover_public_key(hash_personal_message(message), signature)
    return public_key_to_address(public_key) if public_key is not None else None


# -----------------------------------------------------------------------------
# Hex
# -----------------------------------------------------------------------------

def bytes_to_hex(data: bytes) -> str:
    """0x-prefixed lower-case hex, the wire form for every hash and signature."""
    return "0x" + bytes(data).hex()


def hex_to_bytes(hex_str: str) -> bytes:
    body = hex_str[2:] if hex_str[:2] in ("0x", "0X") else hex_str
    return bytes.fromhex(body)


def is_valid_address(address: str) -> bool:
    """True for ``0x`` followed by exactly 40 hex digits (any case)."""
    return (
        isinstance(address, str)
        and len(address) == 2 + 2 * ADDRESS_LENGTH
        and address.startswith("0x")
        and all(c in _HEX_DIGITS for c in address[2:])
    )


__all__ = [
    "SECP256K1_ORDER",
    "PERSONAL_MESSAGE_PREFIX",
    "HASH_LENGTH",
    "SIGNATURE_LENGTH",
    "ZERO_HASH",
    "ZERO_ADDRESS",
    "keccak256",
    "sha256",
    "hash_personal_message",
    "KeyPair",
    "generate_keypair",
    "keypair_from_private_key",
    "private_key_to_public_key",
    "public_key_to_address",
    "sign",
    "verify",
    "recover_public_key",
    "sign_message",
    "recover_message_signer",
    "bytes_to_hex",
    "hex_to_bytes",
    "is_valid_address",
]
