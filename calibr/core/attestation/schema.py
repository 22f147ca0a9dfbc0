"""
Attestation Schemas - Definitions and data encoding for Calibr schemas.

Each schema is an EAS schema string ("uint256 probability,string marketId,...").
The string fixes both the on-chain ABI layout of attestation data and the
field order of Merkle leaves for private attestations.

Encoding Notes:
---------------
On-chain data uses the Solidity ABI layout of a tuple of the schema types:
- static types (uint256, bool, address, bytes32) occupy one 32-byte head word
- dynamic types (string, bytes) store an offset in the head and
  length || padded data in the tail

Schema UID = keccak256(schema_string || resolver(20 bytes) || revocable(1 byte)),
matching the SchemaRegistry contract.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Type, Union

from calibr.core.errors import ValidationError
from calibr.core.merkle.leaf import ClaimField, FieldType, normalize_type
from calibr.crypto import ZERO_ADDRESS, bytes_to_hex, hex_to_bytes, keccak256
from calibr.utils.validation import (
    Result,
    validate_basis_points,
    validate_bool,
    validate_fixed_bytes,
    validate_integer,
    validate_string,
)


# =============================================================================
# Schema Definitions
# =============================================================================


@dataclass(frozen=True)
class SchemaField:
    """One typed entry of a schema string."""
    name: str
    abi_type: str

    @property
    def field_type(self) -> Union[FieldType, str]:
        return normalize_type(self.abi_type)


@dataclass(frozen=True)
class SchemaDefinition:
    """
    An EAS schema.

    Attributes:
        name: Registry name (e.g. "CalibrForecast")
        description: Human-readable purpose
        schema: EAS schema string
        revocable: Whether attestations may be revoked
    """
    name: str
    description: str
    schema: str
    revocable: bool
    resolver: str = ZERO_ADDRESS

    @property
    def fields(self) -> List[SchemaField]:
        return parse_schema(self.schema)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def uid(self) -> str:
        return compute_schema_uid(self.schema, self.resolver, self.revocable)


SUPPORTED_ABI_TYPES = ("uint256", "string", "bool", "bytes32", "address", "bytes")


def parse_schema(schema: str) -> List[SchemaField]:
    """
    Parse an EAS schema string into typed fields.

    Raises:
        ValidationError: Empty schema, malformed entry or unsupported type
    """
    if not schema or not schema.strip():
        raise ValidationError("schema string is empty")

    fields = []
    for entry in schema.split(","):
        parts = entry.strip().split()
        if len(parts) != 2:
            raise ValidationError(f"malformed schema entry: {entry!r}")
        abi_type, name = parts
        if abi_type not in SUPPORTED_ABI_TYPES:
            raise ValidationError(f"unsupported schema type: {abi_type}")
        fields.append(SchemaField(name=name, abi_type=abi_type))
    return fields


def compute_schema_uid(schema: str, resolver: str = ZERO_ADDRESS, revocable: bool = True) -> str:
    """Schema UID = keccak256(abi.encodePacked(schema, resolver, revocable))."""
    packed = schema.encode("utf-8") + hex_to_bytes(resolver) + (b"\x01" if revocable else b"\x00")
    return bytes_to_hex(keccak256(packed))


FORECAST_SCHEMA = SchemaDefinition(
    name="CalibrForecast",
    description="Attestation for a user forecast on a prediction market",
    schema="uint256 probability,string marketId,string platform,uint256 confidence,string reasoning,bool isPublic",
    revocable=True,
)

CALIBRATION_SCHEMA = SchemaDefinition(
    name="CalibrCalibrationScore",
    description="Attestation for user calibration scores over a period",
    schema="uint256 brierScore,uint256 totalForecasts,uint256 timeWeightedScore,uint256 period,string category",
    revocable=False,
)

IDENTITY_SCHEMA = SchemaDefinition(
    name="CalibrIdentity",
    description="Links user identity across prediction platforms",
    schema="string platform,string platformUserId,bytes32 proofHash,bool verified,uint256 verifiedAt",
    revocable=True,
)

SUPERFORECASTER_SCHEMA = SchemaDefinition(
    name="CalibrSuperforecaster",
    description="Badge attestation for superforecaster tier achievement",
    schema="string tier,uint256 score,uint256 period,string category,uint256 rank",
    revocable=False,
)

REPUTATION_SCHEMA = SchemaDefinition(
    name="CalibrReputation",
    description="Aggregated reputation from prediction platforms",
    schema="string platform,uint256 totalVolume,uint256 winRate,uint256 profitLoss,string verificationLevel",
    revocable=True,
)

PRIVATE_DATA_SCHEMA = SchemaDefinition(
    name="CalibrPrivateData",
    description="Merkle root for private data attestations with selective disclosure",
    schema="bytes32 merkleRoot,string dataType,uint256 fieldCount",
    revocable=True,
)

CALIBR_SCHEMAS: Dict[str, SchemaDefinition] = {
    "FORECAST": FORECAST_SCHEMA,
    "CALIBRATION": CALIBRATION_SCHEMA,
    "IDENTITY": IDENTITY_SCHEMA,
    "SUPERFORECASTER": SUPERFORECASTER_SCHEMA,
    "REPUTATION": REPUTATION_SCHEMA,
    "PRIVATE_DATA": PRIVATE_DATA_SCHEMA,
}

# Leaf order of a forecast claim
FORECAST_FIELDS: Tuple[str, ...] = tuple(FORECAST_SCHEMA.field_names)


# =============================================================================
# ABI Encoding
# =============================================================================


WORD = 32


def _pad_right(data: bytes) -> bytes:
    remainder = len(data) % WORD
    return data + bytes(WORD - remainder) if remainder else data


def _fixed_value(value: Any, size: int, label: str) -> bytes:
    ok, err = validate_fixed_bytes(value, label, size)
    if not ok:
        raise ValidationError(err, field=label)
    return bytes(value) if isinstance(value, (bytes, bytearray)) else hex_to_bytes(value)


def _encode_static(abi_type: str, value: Any, label: str) -> bytes:
    if abi_type == "uint256":
        ok, err = validate_integer(value, label)
        if not ok:
            raise ValidationError(err, field=label)
        return value.to_bytes(WORD, "big")
    if abi_type == "bool":
        ok, err = validate_bool(value, label)
        if not ok:
            raise ValidationError(err, field=label)
        return (1 if value else 0).to_bytes(WORD, "big")
    if abi_type == "address":
        return bytes(12) + _fixed_value(value, 20, label)
    if abi_type == "bytes32":
        return _fixed_value(value, 32, label)
    raise ValidationError(f"unsupported ABI type: {abi_type}", field=label)


def _encode_dynamic(abi_type: str, value: Any, label: str) -> bytes:
    if abi_type == "string":
        ok, err = validate_string(value, label)
        if not ok:
            raise ValidationError(err, field=label)
        data = value.encode("utf-8")
    else:
        if isinstance(value, str):
            value = hex_to_bytes(value)
        if not isinstance(value, (bytes, bytearray)):
            raise ValidationError(f"{label} must be bytes", field=label)
        data = bytes(value)
    return len(data).to_bytes(WORD, "big") + _pad_right(data)


def encode_abi(types: Sequence[str], values: Sequence[Any], names: Optional[Sequence[str]] = None) -> bytes:
    """
    ABI-encode a tuple of values.

    Args:
        types: ABI type names (uint256, bool, address, bytes32, string, bytes)
        values: Python values in the same order
        names: Optional field names for error messages

    Raises:
        ValidationError: Length mismatch or a value that does not fit its type
    """
    if len(types) != len(values):
        raise ValidationError(f"expected {len(types)} values, got {len(values)}")
    names = names or [f"arg{i}" for i in range(len(types))]

    head_size = WORD * len(types)
    heads: List[bytes] = []
    tails: List[bytes] = []
    tail_offset = head_size

    for abi_type, value, label in zip(types, values, names):
        if abi_type in ("string", "bytes"):
            encoded = _encode_dynamic(abi_type, value, label)
            heads.append(tail_offset.to_bytes(WORD, "big"))
            tails.append(encoded)
            tail_offset += len(encoded)
        else:
            heads.append(_encode_static(abi_type, value, label))

    return b"".join(heads) + b"".join(tails)


def decode_abi(types: Sequence[str], data: bytes) -> List[Any]:
    """
    Decode ABI data produced by encode_abi.

    Addresses and bytes32 decode to 0x-hex strings.

    Raises:
        ValidationError: Truncated or inconsistent data
    """
    if len(data) < WORD * len(types):
        raise ValidationError("ABI data shorter than its head")

    values: List[Any] = []
    for i, abi_type in enumerate(types):
        word = data[i * WORD:(i + 1) * WORD]
        if abi_type == "uint256":
            values.append(int.from_bytes(word, "big"))
        elif abi_type == "bool":
            values.append(word[-1] == 1)
        elif abi_type == "address":
            values.append(bytes_to_hex(word[12:]))
        elif abi_type == "bytes32":
            values.append(bytes_to_hex(word))
        elif abi_type in ("string", "bytes"):
            offset = int.from_bytes(word, "big")
            if offset + WORD > len(data):
                raise ValidationError(f"offset out of range for argument {i}")
            length = int.from_bytes(data[offset:offset + WORD], "big")
            start = offset + WORD
            if start + length > len(data):
                raise ValidationError(f"length out of range for argument {i}")
            raw = data[start:start + length]
            if abi_type == "string":
                try:
                    values.append(raw.decode("utf-8"))
                except UnicodeDecodeError as e:
                    raise ValidationError(f"argument {i} is not valid UTF-8") from e
            else:
                values.append(raw)
        else:
            raise ValidationError(f"unsupported ABI type: {abi_type}")
    return values


def encode_schema_data(schema: SchemaDefinition, data: Dict[str, Any]) -> bytes:
    """ABI-encode a name->value mapping in schema order."""
    fields = schema.fields
    missing = [f.name for f in fields if f.name not in data]
    if missing:
        raise ValidationError(f"missing schema fields: {', '.join(missing)}")
    return encode_abi(
        [f.abi_type for f in fields],
        [data[f.name] for f in fields],
        [f.name for f in fields],
    )


def decode_schema_data(schema: SchemaDefinition, data: bytes) -> Dict[str, Any]:
    fields = schema.fields
    values = decode_abi([f.abi_type for f in fields], data)
    return {f.name: v for f, v in zip(fields, values)}


# =============================================================================
# Claims
# =============================================================================


SUPERFORECASTER_TIERS: Tuple[str, ...] = ("APPRENTICE", "JOURNEYMAN", "EXPERT", "MASTER", "GRANDMASTER")


class AttestationClaim:
    """
    Base for typed claims, one attribute per schema field.

    Subclasses are dataclasses that set:
        SCHEMA: The SchemaDefinition the claim is encoded with
        DATA_TYPE: Catalogue key, also the dataType tag of private attestations
        ATTRIBUTES: Schema field name -> attribute name, in schema order
        MODES: Attestation modes the claim may be created in
    """

    SCHEMA: ClassVar[SchemaDefinition]
    DATA_TYPE: ClassVar[str]
    ATTRIBUTES: ClassVar[Dict[str, str]]
    MODES: ClassVar[Tuple[str, ...]] = ("onchain",)

    def checks(self) -> List[Result]:
        raise NotImplementedError

    def validate(self) -> None:
        """
        Raises:
            ValidationError: Any field out of range or of the wrong type
        """
        for ok, err in self.checks():
            if not ok:
                raise ValidationError(err)

    def to_data(self) -> Dict[str, Any]:
        """Schema-keyed values (camelCase)."""
        return {name: getattr(self, attr) for name, attr in self.ATTRIBUTES.items()}

    def to_fields(self) -> List[ClaimField]:
        """Ordered claim fields, one per Merkle leaf."""
        data = self.to_data()
        return [ClaimField(f.name, f.abi_type, data[f.name]) for f in self.SCHEMA.fields]

    def encode(self) -> bytes:
        self.validate()
        return encode_schema_data(self.SCHEMA, self.to_data())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        """Accepts camelCase (schema) or snake_case keys."""
        values = {}
        for name, attr in cls.ATTRIBUTES.items():
            if name in data:
                values[attr] = data[name]
            elif attr in data:
                values[attr] = data[attr]
            else:
                raise ValidationError(f"missing {cls.DATA_TYPE.lower()} field: {name}", field=name)
        return cls(**values)

    @classmethod
    def decode(cls, data: bytes):
        return cls.from_dict(decode_schema_data(cls.SCHEMA, data))


def _non_empty(value: Any, name: str) -> Result:
    return (True, "") if value else (False, f"{name} must not be empty")


@dataclass
class ForecastClaim(AttestationClaim):
    """
    A user forecast on a prediction market.

    Probability and confidence are basis points (7525 = 75.25%).
    """
    probability: int
    market_id: str
    platform: str
    confidence: int
    reasoning: str
    is_public: bool

    SCHEMA = FORECAST_SCHEMA
    DATA_TYPE = "FORECAST"
    ATTRIBUTES = {
        "probability": "probability",
        "marketId": "market_id",
        "platform": "platform",
        "confidence": "confidence",
        "reasoning": "reasoning",
        "isPublic": "is_public",
    }
    MODES = ("onchain", "offchain", "private")

    def checks(self) -> List[Result]:
        return [
            validate_basis_points(self.probability, "probability"),
            validate_string(self.market_id, "marketId", max_length=1024),
            _non_empty(self.market_id, "marketId"),
            validate_string(self.platform, "platform", max_length=256),
            validate_basis_points(self.confidence, "confidence"),
            validate_string(self.reasoning, "reasoning", max_length=65536),
            validate_bool(self.is_public, "isPublic"),
        ]


@dataclass
class CalibrationClaim(AttestationClaim):
    """
    Calibration score over a period. Permanent: the schema is not revocable.

    brier_score and time_weighted_score are scaled by 10000 (0.25 = 2500);
    period is the unix time the period ends.
    """
    brier_score: int
    total_forecasts: int
    time_weighted_score: int
    period: int
    category: str

    SCHEMA = CALIBRATION_SCHEMA
    DATA_TYPE = "CALIBRATION"
    ATTRIBUTES = {
        "brierScore": "brier_score",
        "totalForecasts": "total_forecasts",
        "timeWeightedScore": "time_weighted_score",
        "period": "period",
        "category": "category",
    }

    def checks(self) -> List[Result]:
        return [
            validate_basis_points(self.brier_score, "brierScore"),
            validate_integer(self.total_forecasts, "totalForecasts"),
            validate_integer(self.time_weighted_score, "timeWeightedScore"),
            validate_integer(self.period, "period"),
            validate_string(self.category, "category", max_length=256),
        ]


@dataclass
class IdentityClaim(AttestationClaim):
    """Link between a platform account and the attested wallet."""
    platform: str
    platform_user_id: str
    proof_hash: Union[str, bytes]
    verified: bool
    verified_at: int

    SCHEMA = IDENTITY_SCHEMA
    DATA_TYPE = "IDENTITY"
    ATTRIBUTES = {
        "platform": "platform",
        "platformUserId": "platform_user_id",
        "proofHash": "proof_hash",
        "verified": "verified",
        "verifiedAt": "verified_at",
    }
    MODES = ("onchain", "private")

    def checks(self) -> List[Result]:
        return [
            validate_string(self.platform, "platform", max_length=256),
            _non_empty(self.platform, "platform"),
            validate_string(self.platform_user_id, "platformUserId", max_length=1024),
            _non_empty(self.platform_user_id, "platformUserId"),
            validate_fixed_bytes(self.proof_hash, "proofHash", 32),
            validate_bool(self.verified, "verified"),
            validate_integer(self.verified_at, "verifiedAt"),
        ]


@dataclass
class SuperforecasterClaim(AttestationClaim):
    """Tier badge. Permanent: the schema is not revocable."""
    tier: str
    score: int
    period: int
    category: str
    rank: int

    SCHEMA = SUPERFORECASTER_SCHEMA
    DATA_TYPE = "SUPERFORECASTER"
    ATTRIBUTES = {
        "tier": "tier",
        "score": "score",
        "period": "period",
        "category": "category",
        "rank": "rank",
    }

    def checks(self) -> List[Result]:
        tier_ok = (
            (True, "")
            if self.tier in SUPERFORECASTER_TIERS
            else (False, f"tier must be one of {', '.join(SUPERFORECASTER_TIERS)}, got {self.tier!r}")
        )
        return [
            tier_ok,
            validate_integer(self.score, "score"),
            validate_integer(self.period, "period"),
            validate_string(self.category, "category", max_length=256),
            validate_integer(self.rank, "rank"),
        ]


@dataclass
class ReputationClaim(AttestationClaim):
    """
    Aggregated track record on one platform.

    win_rate is in basis points. profit_loss is encoded as uint256, so a
    loss cannot be represented and is rejected.
    """
    platform: str
    total_volume: int
    win_rate: int
    profit_loss: int
    verification_level: str

    SCHEMA = REPUTATION_SCHEMA
    DATA_TYPE = "REPUTATION"
    ATTRIBUTES = {
        "platform": "platform",
        "totalVolume": "total_volume",
        "winRate": "win_rate",
        "profitLoss": "profit_loss",
        "verificationLevel": "verification_level",
    }

    def checks(self) -> List[Result]:
        return [
            validate_string(self.platform, "platform", max_length=256),
            _non_empty(self.platform, "platform"),
            validate_integer(self.total_volume, "totalVolume"),
            validate_basis_points(self.win_rate, "winRate"),
            validate_integer(self.profit_loss, "profitLoss"),
            validate_string(self.verification_level, "verificationLevel", max_length=256),
        ]


CLAIM_TYPES: Dict[str, Type[AttestationClaim]] = {
    cls.DATA_TYPE: cls
    for cls in (ForecastClaim, CalibrationClaim, IdentityClaim, SuperforecasterClaim, ReputationClaim)
}


def claim_type(name: str) -> Type[AttestationClaim]:
    """Claim class for a catalogue key such as "identity" or "CALIBRATION"."""
    try:
        return CLAIM_TYPES[name.upper()]
    except KeyError:
        raise ValidationError(
            f"unknown claim type {name!r}; expected one of {', '.join(CLAIM_TYPES)}"
        ) from None


def encode_forecast_data(claim: ForecastClaim) -> bytes:
    return claim.encode()


def decode_forecast_data(data: bytes) -> ForecastClaim:
    return ForecastClaim.decode(data)


def encode_private_data(merkle_root: bytes, data_type: str, field_count: int) -> bytes:
    """On-chain payload of a private attestation: root, category tag, field count."""
    return encode_schema_data(
        PRIVATE_DATA_SCHEMA,
        {"merkleRoot": merkle_root, "dataType": data_type, "fieldCount": field_count},
    )


__all__ = [
    "SchemaField",
    "SchemaDefinition",
    "parse_schema",
    "compute_schema_uid",
    "FORECAST_SCHEMA",
    "CALIBRATION_SCHEMA",
    "IDENTITY_SCHEMA",
    "SUPERFORECASTER_SCHEMA",
    "REPUTATION_SCHEMA",
    "PRIVATE_DATA_SCHEMA",
    "CALIBR_SCHEMAS",
    "FORECAST_FIELDS",
    "SUPERFORECASTER_TIERS",
    "encode_abi",
    "decode_abi",
    "encode_schema_data",
    "decode_schema_data",
    "AttestationClaim",
    "ForecastClaim",
    "CalibrationClaim",
    "IdentityClaim",
    "SuperforecasterClaim",
    "ReputationClaim",
    "CLAIM_TYPES",
    "claim_type",
    "encode_forecast_data",
    "decode_forecast_data",
    "encode_private_data",
]
