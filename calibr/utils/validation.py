"""
Checks applied to claim values before they are encoded or hashed.

Each validator returns ``(is_valid, error_message)`` and never raises; the
encoders in ``calibr.core.merkle.leaf`` and ``calibr.core.attestation.schema``
turn a failed check into ``ValidationError``. Keeping the checks side-effect
free lets the CLI report every problem with a claim file instead of stopping
at the first exception.
"""

import re
from typing import Any, Iterable, Optional, Tuple

Result = Tuple[bool, str]

OK: Result = (True, "")

MAX_UINT256 = 2**256 - 1
MAX_HASH_SIZE = 32
MAX_ADDRESS_SIZE = 20
# Leaf encoding prefixes every string with a big-endian uint32 length
MAX_STRING_LENGTH = 2**32 - 1
MAX_FIELD_NAME_LENGTH = 256
MAX_FIELD_COUNT = 256
MAX_BASIS_POINTS = 10_000

FIELD_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _wrong_type(name: str, expected: str, value: Any) -> Result:
    return False, f"{name}: expected {expected}, got {type(value).__name__}"


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Result:
    """
    Raw byte input.

    Args:
        data: Candidate value (bytes or bytearray)
        name: Label used in the error message
        expected_length: Exact size, when the type is fixed-width
        max_length: Upper bound, when the type is variable-width
    """
    if not isinstance(data, (bytes, bytearray)):
        return _wrong_type(name, "bytes", data)
    size = len(data)
    if expected_length is not None and size != expected_length:
        return False, f"{name}: expected {expected_length} bytes, got {size}"
    if max_length is not None and size > max_length:
        return False, f"{name}: {size} bytes is over the {max_length} byte limit"
    return OK


def validate_hash(hash_value: Any, name: str = "hash") -> Result:
    return validate_bytes(hash_value, name, expected_length=MAX_HASH_SIZE)


def validate_integer(
    value: Any,
    name: str,
    min_val: int = 0,
    max_val: int = MAX_UINT256,
) -> Result:
    """Integer in ``[min_val, max_val]``; defaults to the uint256 range. ``True`` is not 1."""
    if isinstance(value, bool) or not isinstance(value, int):
        return _wrong_type(name, "int", value)
    if not min_val <= value <= max_val:
        return False, f"{name}: {value} is outside [{min_val}, {max_val}]"
    return OK


def validate_basis_points(value: Any, name: str) -> Result:
    return validate_integer(value, name, 0, MAX_BASIS_POINTS)


def validate_bool(value: Any, name: str) -> Result:
    return OK if isinstance(value, bool) else _wrong_type(name, "bool", value)


def validate_string(
    value: Any,
    name: str,
    max_length: int = MAX_STRING_LENGTH,
    pattern: Optional[str] = None,
) -> Result:
    """
    Text value. ``max_length`` bounds the UTF-8 byte length, which is what
    the leaf encoding prefixes; ``pattern`` must match the whole string.
    """
    if not isinstance(value, str):
        return _wrong_type(name, "str", value)
    try:
        encoded = len(value.encode("utf-8"))
    except UnicodeEncodeError:
        return False, f"{name}: not encodable as UTF-8 (lone surrogate)"
    if encoded > max_length:
        return False, f"{name}: {encoded} UTF-8 bytes is over the {max_length} byte limit"
    if pattern is not None and re.fullmatch(pattern, value) is None:
        return False, f"{name}: {value!r} does not match {pattern}"
    return OK


def validate_field_name(value: Any) -> Result:
    if not isinstance(value, str):
        return _wrong_type("field name", "str", value)
    if not value:
        return False, "field name must not be empty"
    if len(value) > MAX_FIELD_NAME_LENGTH:
        return False, f"field name is longer than {MAX_FIELD_NAME_LENGTH} characters"
    if FIELD_NAME_RE.fullmatch(value) is None:
        return False, f"field name {value!r} must be an identifier (letters, digits, underscore)"
    return OK


def validate_hex_string(value: Any, name: str, expected_bytes: Optional[int] = None) -> Result:
    """``0x``-prefixed hex with an even number of digits, optionally of a fixed decoded size."""
    if not isinstance(value, str):
        return _wrong_type(name, "0x-hex str", value)
    if value[:2] not in ("0x", "0X"):
        return False, f"{name}: missing 0x prefix"
    digits = value[2:]
    if len(digits) % 2:
        return False, f"{name}: odd number of hex digits"
    try:
        decoded = bytes.fromhex(digits)
    except ValueError:
        return False, f"{name}: not valid hex"
    if expected_bytes is not None and len(decoded) != expected_bytes:
        return False, f"{name}: expected {expected_bytes} bytes, got {len(decoded)}"
    return OK


def validate_fixed_bytes(value: Any, name: str, size: int) -> Result:
    """bytes32/address style input: raw bytes or 0x-hex, exactly ``size`` bytes."""
    if isinstance(value, (bytes, bytearray)):
        return validate_bytes(value, name, expected_length=size)
    return validate_hex_string(value, name, expected_bytes=size)


def validate_array(data: Any, name: str, max_length: int = MAX_FIELD_COUNT) -> Result:
    """Non-empty list or tuple with at most ``max_length`` items."""
    if not isinstance(data, (list, tuple)):
        return _wrong_type(name, "list", data)
    if not data:
        return False, f"{name}: at least one item is required"
    if len(data) > max_length:
        return False, f"{name}: {len(data)} items is over the limit of {max_length}"
    return OK


def validate_unique_names(names: Iterable[str]) -> Result:
    """Proofs and disclosures are keyed by field name, so names may not repeat."""
    seen = set()
    for field_name in names:
        if field_name in seen:
            return False, f"duplicate field name: {field_name}"
        seen.add(field_name)
    return OK


__all__ = [
    "Result",
    "validate_bytes",
    "validate_hash",
    "validate_integer",
    "validate_basis_points",
    "validate_bool",
    "validate_string",
    "validate_field_name",
    "validate_hex_string",
    "validate_fixed_bytes",
    "validate_array",
    "validate_unique_names",
    "MAX_UINT256",
    "MAX_HASH_SIZE",
    "MAX_ADDRESS_SIZE",
    "MAX_STRING_LENGTH",
    "MAX_FIELD_COUNT",
    "MAX_BASIS_POINTS",
]
