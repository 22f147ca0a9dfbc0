"""
Leaf Encoder - Canonical encoding of claim fields into Merkle leaves.

Each claim field (name, type, value) becomes exactly one leaf:

    value_bytes = encode_value(type, value)
    leaf        = keccak256( lp(name) || lp(type_tag) || lp(value_bytes) )

where lp(x) = uint32_be(len(x)) || x. The length prefixes make the triplet
serialization injective, so two different fields can only share a leaf hash
through a Keccak collision.

Value encodings:
- uint     32-byte big-endian (uint256 range)
- string   uint32_be(len) || UTF-8 bytes
- bool     single byte 0x01 / 0x00
- bytes32  raw 32 bytes
- address  raw 20 bytes
- other    uint32_be(len) || UTF-8 of str(value)   (fallback, non-strict only)

Field order is part of the encoding contract: leaf i is always the i-th
field of the schema, at creation and at verification time.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from calibr.core.errors import ValidationError
from calibr.crypto import bytes_to_hex, hex_to_bytes, keccak256
from calibr.utils.validation import (
    validate_array,
    validate_bool,
    validate_field_name,
    validate_fixed_bytes,
    validate_integer,
    validate_string,
    validate_unique_names,
)


# =============================================================================
# Types
# =============================================================================


class FieldType(str, Enum):
    """Canonical type tags for claim fields."""
    UINT = "uint"
    STRING = "string"
    BOOL = "bool"
    BYTES32 = "bytes32"
    ADDRESS = "address"


# Solidity spellings used by EAS schema strings
TYPE_ALIASES: Dict[str, FieldType] = {
    "uint": FieldType.UINT,
    "uint256": FieldType.UINT,
    "string": FieldType.STRING,
    "bool": FieldType.BOOL,
    "bytes32": FieldType.BYTES32,
    "address": FieldType.ADDRESS,
}


def normalize_type(type_tag: Union[str, FieldType]) -> Union[FieldType, str]:
    """
    Map a type tag to its canonical FieldType.

    Unrecognized tags are returned unchanged (as str) so the fallback
    encoding can still tag them.
    """
    if isinstance(type_tag, FieldType):
        return type_tag
    if not isinstance(type_tag, str) or not type_tag:
        raise ValidationError(f"type tag must be a non-empty string, got {type_tag!r}")
    return TYPE_ALIASES.get(type_tag, type_tag)


def type_tag_of(type_tag: Union[str, FieldType]) -> str:
    normalized = normalize_type(type_tag)
    return normalized.value if isinstance(normalized, FieldType) else normalized


@dataclass(frozen=True)
class ClaimField:
    """
    One named, typed value of a claim.

    Attributes:
        name: Schema field name (e.g. "probability")
        type: Canonical FieldType, or a raw tag for fallback encoding
        value: Python value (int, str, bool, bytes or 0x-hex)
    """
    name: str
    type: Union[FieldType, str]
    value: Any

    def __post_init__(self):
        object.__setattr__(self, "type", normalize_type(self.type))

    @property
    def type_tag(self) -> str:
        return type_tag_of(self.type)

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type_tag, "value": json_value(self.value)}

    @classmethod
    def from_dict(cls, data: dict) -> "ClaimField":
        try:
            return cls(name=data["name"], type=data["type"], value=data["value"])
        except KeyError as e:
            raise ValidationError(f"claim field missing key: {e.args[0]}") from e


@dataclass(frozen=True)
class MerkleLeaf:
    """
    A hashed claim field. Immutable once created.

    Attributes:
        index: Position in the ordered field list
        name: Field name
        type: Canonical type tag
        value: Original value
        hash: 32-byte leaf hash
    """
    index: int
    name: str
    type: str
    value: Any
    hash: bytes = field(repr=False)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "type": self.type,
            "value": json_value(self.value),
            "hash": bytes_to_hex(self.hash),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MerkleLeaf":
        return cls(
            index=data["index"],
            name=data["name"],
            type=data["type"],
            value=data["value"],
            hash=hex_to_bytes(data["hash"]),
        )


def json_value(value: Any) -> Any:
    """Render a field value for JSON output (bytes become 0x-hex)."""
    if isinstance(value, (bytes, bytearray)):
        return bytes_to_hex(bytes(value))
    return value


# =============================================================================
# Encoding
# =============================================================================


def _length_prefixed(data: bytes) -> bytes:
    if len(data) > 0xFFFFFFFF:
        raise ValidationError("encoded component exceeds uint32 length prefix")
    return len(data).to_bytes(4, "big") + data


def _check(result: Tuple[bool, str], field_name: Optional[str]) -> None:
    ok, err = result
    if not ok:
        raise ValidationError(err, field=field_name)


def _fixed_bytes(value: Any, size: int, label: str, field_name: Optional[str]) -> bytes:
    _check(validate_fixed_bytes(value, label, size), field_name)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return hex_to_bytes(value)


def encode_value(
    type_tag: Union[str, FieldType],
    value: Any,
    strict: bool = False,
    field_name: Optional[str] = None,
) -> bytes:
    """
    Canonically encode a single value according to its type.

    Args:
        type_tag: Field type (canonical or alias)
        value: Value to encode
        strict: Reject unrecognized types instead of using the string fallback
        field_name: Used in error messages only

    Returns:
        Encoded value bytes

    Raises:
        ValidationError: Value does not fit its type, or unsupported type in strict mode
    """
    label = field_name or "value"
    kind = normalize_type(type_tag)

    if kind is FieldType.UINT:
        _check(validate_integer(value, label), field_name)
        return value.to_bytes(32, "big")

    if kind is FieldType.STRING:
        _check(validate_string(value, label), field_name)
        return _length_prefixed(value.encode("utf-8"))

    if kind is FieldType.BOOL:
        _check(validate_bool(value, label), field_name)
        return b"\x01" if value else b"\x00"

    if kind is FieldType.BYTES32:
        return _fixed_bytes(value, 32, label, field_name)

    if kind is FieldType.ADDRESS:
        return _fixed_bytes(value, 20, label, field_name)

    if strict:
        raise ValidationError(f"unsupported field type: {kind}", field=field_name)

    if isinstance(value, (bytes, bytearray)):
        value = bytes_to_hex(bytes(value))
    text = str(value)
    _check(validate_string(text, label), field_name)
    return _length_prefixed(text.encode("utf-8"))


def serialize_leaf(name: str, type_tag: str, encoded_value: bytes) -> bytes:
    """Serialize the (name, type-tag, encoded-value) triplet."""
    return (
        _length_prefixed(name.encode("utf-8"))
        + _length_prefixed(type_tag.encode("utf-8"))
        + _length_prefixed(encoded_value)
    )


def hash_leaf(
    name: str,
    type_tag: Union[str, FieldType],
    value: Any,
    strict: bool = False,
) -> bytes:
    """
    Hash one claim field into its 32-byte leaf.

    Raises:
        ValidationError: Invalid name, type or value
    """
    _check(validate_field_name(name), name if isinstance(name, str) else None)
    tag = type_tag_of(type_tag)
    _check(validate_string(tag, "type tag"), name)
    encoded = encode_value(type_tag, value, strict=strict, field_name=name)
    return keccak256(serialize_leaf(name, tag, encoded))


# =============================================================================
# Leaf Encoder
# =============================================================================


class LeafEncoder:
    """
    Turns an ordered claim into Merkle leaves.

    Stateless apart from the strictness flag; safe to share across threads.
    """

    def __init__(self, strict: bool = False):
        """
        Args:
            strict: Reject field types outside FieldType instead of
                falling back to string encoding
        """
        self.strict = strict

    def hash_field(self, claim_field: ClaimField) -> bytes:
        return hash_leaf(claim_field.name, claim_field.type, claim_field.value, strict=self.strict)

    def encode(self, fields: Sequence[ClaimField]) -> List[MerkleLeaf]:
        """
        Encode an ordered field list into leaves.

        Raises:
            ValidationError: Empty list, duplicate names, or invalid field
        """
        _check(validate_array(fields, "claim fields"), None)
        _check(validate_unique_names([f.name for f in fields]), None)

        return [
            MerkleLeaf(
                index=i,
                name=f.name,
                type=f.type_tag,
                value=f.value,
                hash=self.hash_field(f),
            )
            for i, f in enumerate(fields)
        ]


__all__ = [
    "FieldType",
    "TYPE_ALIASES",
    "ClaimField",
    "MerkleLeaf",
    "LeafEncoder",
    "normalize_type",
    "type_tag_of",
    "encode_value",
    "serialize_leaf",
    "hash_leaf",
    "json_value",
]
