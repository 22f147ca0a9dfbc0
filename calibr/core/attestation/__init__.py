"""
EAS attestations for forecasts and track records: schemas, typed claims,
collaborators, results and the coordinator.
"""

from calibr.core.attestation.schema import (
    SchemaField,
    SchemaDefinition,
    CALIBR_SCHEMAS,
    FORECAST_SCHEMA,
    CALIBRATION_SCHEMA,
    IDENTITY_SCHEMA,
    SUPERFORECASTER_SCHEMA,
    REPUTATION_SCHEMA,
    PRIVATE_DATA_SCHEMA,
    SUPERFORECASTER_TIERS,
    AttestationClaim,
    ForecastClaim,
    CalibrationClaim,
    IdentityClaim,
    SuperforecasterClaim,
    ReputationClaim,
    CLAIM_TYPES,
    claim_type,
    parse_schema,
    compute_schema_uid,
    encode_abi,
    decode_abi,
    encode_forecast_data,
    decode_forecast_data,
    encode_private_data,
)
from calibr.core.attestation.collaborators import (
    AttestationRequest,
    AttestationRecord,
    RevocationRequest,
    LogEntry,
    find_attested_uid,
    find_revoked_uid,
    ChainClient,
    MessageSigner,
    SchemaRegistry,
    LocalMessageSigner,
    InMemoryChainClient,
)
from calibr.core.attestation.results import (
    OnChainAttestationResult,
    OffChainAttestationResult,
    MerkleAttestationResult,
    RevocationResult,
    FailureKind,
    AttestationFailure,
)
from calibr.core.attestation.coordinator import (
    AttestationMode,
    AttestationCoordinator,
    build_offchain_message,
    recover_offchain_signer,
)

__all__ = [
    # Schemas
    "SchemaField",
    "SchemaDefinition",
    "CALIBR_SCHEMAS",
    "FORECAST_SCHEMA",
    "CALIBRATION_SCHEMA",
    "IDENTITY_SCHEMA",
    "SUPERFORECASTER_SCHEMA",
    "REPUTATION_SCHEMA",
    "PRIVATE_DATA_SCHEMA",
    "SUPERFORECASTER_TIERS",
    "AttestationClaim",
    "ForecastClaim",
    "CalibrationClaim",
    "IdentityClaim",
    "SuperforecasterClaim",
    "ReputationClaim",
    "CLAIM_TYPES",
    "claim_type",
    "parse_schema",
    "compute_schema_uid",
    "encode_abi",
    "decode_abi",
    "encode_forecast_data",
    "decode_forecast_data",
    "encode_private_data",
    # Collaborators
    "AttestationRequest",
    "AttestationRecord",
    "RevocationRequest",
    "LogEntry",
    "find_attested_uid",
    "find_revoked_uid",
    "ChainClient",
    "MessageSigner",
    "SchemaRegistry",
    "LocalMessageSigner",
    "InMemoryChainClient",
    # Results
    "OnChainAttestationResult",
    "OffChainAttestationResult",
    "MerkleAttestationResult",
    "RevocationResult",
    "FailureKind",
    "AttestationFailure",
    # Coordinator
    "AttestationMode",
    "AttestationCoordinator",
    "build_offchain_message",
    "recover_offchain_signer",
]
