"""
Attestation Coordinator - Create and revoke Calibr attestations.

Conceptual Background:
----------------------
A forecast can be attested with different trade-offs between cost, privacy
and verifiability:

    ON_CHAIN   full claim ABI-encoded into an EAS attestation
    OFF_CHAIN  claim signed by the wallet, nothing written to the chain
    PRIVATE    only the Merkle root of the claim goes on-chain; leaves and
               proofs stay with the holder for selective disclosure

Every claim type can be attested on-chain. Forecasts may also be signed
off-chain or committed privately; identity claims may be committed
privately. Calibration and superforecaster schemas are not revocable, so
their attestations are permanent.

The coordinator owns no keys and no RPC connection. It drives three injected
collaborators (ChainClient, MessageSigner, SchemaRegistry) and converts
everything that can go wrong with them into an AttestationFailure.

Failure Semantics:
------------------
- Malformed claims raise ValidationError before any hashing or call.
- Missing collaborators or undeployed schemas return an AttestationFailure
  (UNAVAILABLE_DEPENDENCY) before any work is attempted.
- Collaborator errors, timeouts and cancellation of the awaited call return
  an AttestationFailure (EXTERNAL_CALL).
- A confirmation that does not complete leaves the uid undetermined. The
  coordinator never retries; await_confirmation() lets the caller do so.

Cancelling the caller's own task is not swallowed: CancelledError propagates
when the current task is being cancelled.
"""

import asyncio
import json
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Type, Union

from calibr.core.attestation.collaborators import (
    AttestationRecord,
    AttestationRequest,
    ChainClient,
    MessageSigner,
    RevocationRequest,
    SchemaRegistry,
    find_attested_uid,
    find_revoked_uid,
)
from calibr.core.attestation.results import (
    AttestationFailure,
    FailureKind,
    MerkleAttestationResult,
    OffChainAttestationResult,
    OnChainAttestationResult,
    RevocationResult,
)
from calibr.core.attestation.schema import (
    AttestationClaim,
    CalibrationClaim,
    ForecastClaim,
    IdentityClaim,
    ReputationClaim,
    SuperforecasterClaim,
    encode_private_data,
)
from calibr.core.config import AttestationConfig
from calibr.core.errors import (
    ExternalCallFailure,
    UnavailableDependencyError,
    ValidationError,
)
from calibr.core.merkle import MerkleTree, create_merkle_tree
from calibr.crypto import (
    HASH_LENGTH,
    bytes_to_hex,
    is_valid_address,
    keccak256,
    recover_message_signer,
)
from calibr.utils.validation import validate_hex_string
from calibr.utils.logger import get_logger

logger = get_logger("attestation")


# =============================================================================
# Modes and Results
# =============================================================================


class AttestationMode(str, Enum):
    ON_CHAIN = "onchain"
    OFF_CHAIN = "offchain"
    PRIVATE = "private"

    @classmethod
    def parse(cls, value: Any) -> "AttestationMode":
        """Map a user-supplied mode to an AttestationMode; unknown values mean ON_CHAIN."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "").replace("_", "")
        for mode in cls:
            if mode.value == key:
                return mode
        if value:
            logger.warning(f"Unknown attestation mode {value!r}, using onchain")
        return cls.ON_CHAIN


AttestationOutcome = Union[
    OnChainAttestationResult,
    OffChainAttestationResult,
    MerkleAttestationResult,
    AttestationFailure,
]

# A claim instance, or a camelCase/snake_case mapping of its fields
ClaimInput = Union[AttestationClaim, Mapping[str, Any]]


# =============================================================================
# Off-chain Messages
# =============================================================================


def build_offchain_message(
    schema: str,
    recipient: str,
    timestamp: int,
    data: Mapping[str, Any],
    expiration_time: int = 0,
    revocable: bool = True,
) -> str:
    """Canonical JSON signed for an off-chain attestation (sorted keys, no spaces)."""
    return json.dumps(
        {
            "schema": schema,
            "recipient": recipient,
            "time": timestamp,
            "expirationTime": expiration_time,
            "revocable": revocable,
            "data": dict(data),
        },
        sort_keys=True,
        separators=(",", ":"),
    )


def recover_offchain_signer(
    result: OffChainAttestationResult,
    schema: str,
    recipient: str,
    expiration_time: int = 0,
    revocable: bool = True,
) -> Optional[str]:
    """
    Recover the address that signed an off-chain attestation.

    Returns None if the signature is malformed or the uid does not match it.
    """
    if bytes_to_hex(keccak256(result.signature)) != result.uid.lower():
        return None
    message = build_offchain_message(
        schema, recipient, result.timestamp, result.data, expiration_time, revocable
    )
    return recover_message_signer(message, result.signature)


# =============================================================================
# Coordinator
# =============================================================================


class AttestationCoordinator:
    """
    Creates and reads attestations against one configured network.

    Args:
        config: Network, schema UIDs, timeouts and request defaults
        chain_client: Wallet + RPC access (ON_CHAIN, PRIVATE, reads)
        signer: Message signer (OFF_CHAIN)
        schema_registry: Optional deployment check before submitting
        clock: Source of unix time for off-chain timestamps
    """

    def __init__(
        self,
        config: Optional[AttestationConfig] = None,
        chain_client: Optional[ChainClient] = None,
        signer: Optional[MessageSigner] = None,
        schema_registry: Optional[SchemaRegistry] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or AttestationConfig()
        self.chain_client = chain_client
        self.signer = signer
        self.schema_registry = schema_registry
        self.clock = clock

    @property
    def network(self):
        return self.config.network

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def create(
        self,
        claim: ClaimInput,
        mode: Any = AttestationMode.ON_CHAIN,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
        claim_type: Optional[Type[AttestationClaim]] = None,
    ) -> AttestationOutcome:
        """
        Create an attestation in the requested mode.

        Mappings are read as ``claim_type`` (ForecastClaim by default).

        Raises:
            ValidationError: Claim or recipient is malformed, or the claim
                type cannot be attested in this mode
        """
        mode = AttestationMode.parse(mode)
        logger.info(f"Creating {mode.value} attestation on {self.network.chain_name}")

        if mode is AttestationMode.OFF_CHAIN:
            return await self.create_off_chain(claim, recipient, timeout, claim_type)
        if mode is AttestationMode.PRIVATE:
            return await self.create_private(claim, recipient, timeout, claim_type)
        return await self.create_on_chain(claim, recipient, timeout, claim_type)

    # -------------------------------------------------------------------------
    # ON_CHAIN
    # -------------------------------------------------------------------------

    async def create_on_chain(
        self,
        claim: ClaimInput,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
        claim_type: Optional[Type[AttestationClaim]] = None,
    ) -> Union[OnChainAttestationResult, AttestationFailure]:
        """ABI-encode the claim with its schema and submit it to EAS."""
        mode = AttestationMode.ON_CHAIN
        claim = _prepare_claim(claim, mode, claim_type)
        _check_recipient(recipient)
        data = claim.encode()

        try:
            chain = self._require_chain()
            schema_uid = await self._require_schema(claim.DATA_TYPE, timeout)
            request = self._request(
                schema_uid,
                recipient or chain.account,
                data,
                self.config.revocable and claim.SCHEMA.revocable,
            )

            tx_hash = await self._call(
                chain.submit_attestation(request),
                self._timeout(timeout, self.config.signature_timeout),
                "submit attestation",
            )
            logger.info(f"{claim.DATA_TYPE.title()} attestation submitted: {bytes_to_hex(tx_hash)}")

            uid = await self._confirm(chain, tx_hash, timeout)
        except UnavailableDependencyError as e:
            return self._failure(FailureKind.UNAVAILABLE_DEPENDENCY, e, mode)
        except ExternalCallFailure as e:
            return self._failure(FailureKind.EXTERNAL_CALL, e, mode, e.tx_hash)

        return OnChainAttestationResult(
            uid=uid,
            tx_hash=tx_hash,
            explorer_url=self.network.attestation_url(uid),
        )

    async def create_calibration_attestation(
        self,
        claim: ClaimInput,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Union[OnChainAttestationResult, AttestationFailure]:
        """Brier score attestation (permanent, never revocable)."""
        return await self.create_on_chain(claim, recipient, timeout, CalibrationClaim)

    async def create_superforecaster_attestation(
        self,
        claim: ClaimInput,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Union[OnChainAttestationResult, AttestationFailure]:
        return await self.create_on_chain(claim, recipient, timeout, SuperforecasterClaim)

    async def create_reputation_attestation(
        self,
        claim: ClaimInput,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Union[OnChainAttestationResult, AttestationFailure]:
        return await self.create_on_chain(claim, recipient, timeout, ReputationClaim)

    async def create_identity_attestation(
        self,
        claim: ClaimInput,
        use_private_data: bool = False,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Union[OnChainAttestationResult, MerkleAttestationResult, AttestationFailure]:
        """
        Link a platform account to the wallet.

        With ``use_private_data`` only the Merkle root of the five identity
        fields is published, so the platform user id stays private.
        """
        if use_private_data:
            return await self.create_private(claim, recipient, timeout, IdentityClaim)
        return await self.create_on_chain(claim, recipient, timeout, IdentityClaim)

    # -------------------------------------------------------------------------
    # OFF_CHAIN
    # -------------------------------------------------------------------------

    async def create_off_chain(
        self,
        claim: ClaimInput,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
        claim_type: Optional[Type[AttestationClaim]] = None,
    ) -> Union[OffChainAttestationResult, AttestationFailure]:
        mode = AttestationMode.OFF_CHAIN
        claim = _prepare_claim(claim, mode, claim_type)
        _check_recipient(recipient)

        try:
            signer = self._require_signer()
            timestamp = int(self.clock())
            data = claim.to_data()
            message = build_offchain_message(
                self.offchain_schema_id(type(claim)),
                recipient or signer.address,
                timestamp,
                data,
                self.config.expiration_time,
                self.config.revocable,
            )
            signature = await self._call(
                signer.sign(message),
                self._timeout(timeout, self.config.signature_timeout),
                "sign attestation",
            )
        except UnavailableDependencyError as e:
            return self._failure(FailureKind.UNAVAILABLE_DEPENDENCY, e, mode)
        except ExternalCallFailure as e:
            return self._failure(FailureKind.EXTERNAL_CALL, e, mode)

        uid = bytes_to_hex(keccak256(signature))
        logger.info(f"Off-chain attestation signed: {uid}")
        return OffChainAttestationResult(uid=uid, signature=signature, timestamp=timestamp, data=data)

    def offchain_schema_id(self, claim_type: Type[AttestationClaim] = ForecastClaim) -> str:
        """Deployed UID of the claim's schema on this network, else the UID computed from its definition."""
        return self.network.schema_uid(claim_type.DATA_TYPE) or claim_type.SCHEMA.uid

    # -------------------------------------------------------------------------
    # PRIVATE
    # -------------------------------------------------------------------------

    async def create_private(
        self,
        claim: ClaimInput,
        recipient: Optional[str] = None,
        timeout: Optional[float] = None,
        claim_type: Optional[Type[AttestationClaim]] = None,
    ) -> Union[MerkleAttestationResult, AttestationFailure]:
        """
        Commit to the claim's Merkle root on-chain.

        Only (root, data type, field count) is submitted; field values never
        leave this process. The signer is never used. The data type is the
        configured ``data_type`` when set, else the claim's own type.
        """
        mode = AttestationMode.PRIVATE
        claim = _prepare_claim(claim, mode, claim_type)
        _check_recipient(recipient)

        try:
            chain = self._require_chain()
            schema_uid = await self._require_schema("PRIVATE_DATA", timeout)
        except UnavailableDependencyError as e:
            return self._failure(FailureKind.UNAVAILABLE_DEPENDENCY, e, mode)
        except ExternalCallFailure as e:
            return self._failure(FailureKind.EXTERNAL_CALL, e, mode)

        tree_data = create_merkle_tree(claim.to_fields())
        tree = MerkleTree(tree_data.leaf_hashes())
        proofs = tree.proofs_by_name([leaf.name for leaf in tree_data.leaves])
        logger.debug(f"Merkle root {bytes_to_hex(tree_data.root)} over {len(tree_data.leaves)} fields")

        data_type = self.config.data_type or claim.DATA_TYPE
        data = encode_private_data(tree_data.root, data_type, len(tree_data.leaves))
        request = self._request(schema_uid, recipient or chain.account, data)

        try:
            tx_hash = await self._call(
                chain.submit_attestation(request),
                self._timeout(timeout, self.config.signature_timeout),
                "submit private attestation",
            )
        except ExternalCallFailure as e:
            return self._failure(FailureKind.EXTERNAL_CALL, e, mode)
        logger.info(f"Private {data_type.lower()} attestation submitted: {bytes_to_hex(tx_hash)}")

        uid: Optional[str] = None
        try:
            uid = await self._confirm(chain, tx_hash, timeout)
        except ExternalCallFailure as e:
            logger.warning(f"Private attestation unconfirmed, uid unknown: {e}")

        return MerkleAttestationResult(
            uid=uid,
            tx_hash=tx_hash,
            merkle_root=tree_data.root,
            leaves=tree_data.leaves,
            proofs=proofs,
            explorer_url=self.network.attestation_url(uid) if uid else None,
        )

    # -------------------------------------------------------------------------
    # Revocation
    # -------------------------------------------------------------------------

    async def revoke(
        self,
        schema: str,
        uid: str,
        timeout: Optional[float] = None,
    ) -> Union[RevocationResult, AttestationFailure]:
        """
        Revoke an attestation made by the connected account.

        Args:
            schema: Catalogue name (e.g. "FORECAST") or 0x schema UID
            uid: Attestation UID

        Raises:
            ValidationError: schema or uid is not a 32-byte 0x-hex value
        """
        mode = "revoke"
        _check_uid(uid, "uid")
        if schema.startswith("0x"):
            _check_uid(schema, "schema")

        try:
            chain = self._require_chain()
            schema_uid = schema if schema.startswith("0x") else await self._require_schema(schema, timeout)
            tx_hash = await self._call(
                chain.revoke_attestation(RevocationRequest(schema_uid=schema_uid, uid=uid)),
                self._timeout(timeout, self.config.signature_timeout),
                "revoke attestation",
            )
            logger.info(f"Revocation submitted: {bytes_to_hex(tx_hash)}")

            logs = await self._call(
                chain.wait_for_receipt(tx_hash),
                self._timeout(timeout, self.config.confirmation_timeout),
                "wait for revocation",
                tx_hash,
            )
            if find_revoked_uid(logs) != uid.lower():
                raise ExternalCallFailure(
                    "Transaction confirmed without a Revoked event",
                    operation="wait for revocation",
                    tx_hash=tx_hash,
                )
        except UnavailableDependencyError as e:
            return self._failure(FailureKind.UNAVAILABLE_DEPENDENCY, e, mode)
        except ExternalCallFailure as e:
            return self._failure(FailureKind.EXTERNAL_CALL, e, mode, e.tx_hash)

        logger.info(f"Attestation revoked: {uid}")
        return RevocationResult(uid=uid.lower(), tx_hash=tx_hash)

    # -------------------------------------------------------------------------
    # Confirmation and Reads
    # -------------------------------------------------------------------------

    async def await_confirmation(
        self,
        tx_hash: bytes,
        timeout: Optional[float] = None,
        mode: AttestationMode = AttestationMode.ON_CHAIN,
    ) -> Union[str, AttestationFailure]:
        """Wait (again) for a submitted attestation; returns its uid or a failure."""
        try:
            chain = self._require_chain()
            return await self._confirm(chain, tx_hash, timeout)
        except UnavailableDependencyError as e:
            return self._failure(FailureKind.UNAVAILABLE_DEPENDENCY, e, mode)
        except ExternalCallFailure as e:
            return self._failure(FailureKind.EXTERNAL_CALL, e, mode, tx_hash)

    async def get_attestation(self, uid: str, timeout: Optional[float] = None) -> Optional[AttestationRecord]:
        """Stored attestation, or None if unknown or unreadable."""
        try:
            chain = self._require_chain(need_account=False)
            return await self._call(
                chain.read_attestation(uid),
                self._timeout(timeout, self.config.confirmation_timeout),
                "read attestation",
            )
        except (UnavailableDependencyError, ExternalCallFailure) as e:
            logger.warning(f"Cannot read attestation {uid}: {e}")
            return None

    async def is_attestation_valid(self, uid: str, timeout: Optional[float] = None) -> bool:
        """Exists, not revoked and not expired."""
        record = await self.get_attestation(uid, timeout)
        return record is not None and record.is_valid(int(self.clock()))

    async def check_schema_exists(self, name_or_uid: str, timeout: Optional[float] = None) -> bool:
        """Whether a schema (by catalogue name or UID) is registered on this network."""
        uid = name_or_uid if name_or_uid.startswith("0x") else self.network.schema_uid(name_or_uid)
        if uid is None:
            return False
        if self.schema_registry is None:
            known = {u.lower() for u in self.network.schema_uids.values()}
            return uid.lower() in known
        try:
            return bool(await self._call(
                self.schema_registry.schema_exists(uid),
                self._timeout(timeout, self.config.confirmation_timeout),
                "check schema",
            ))
        except ExternalCallFailure as e:
            logger.warning(f"Schema lookup failed: {e}")
            return False

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require_chain(self, need_account: bool = True) -> ChainClient:
        if self.chain_client is None:
            raise UnavailableDependencyError("No chain client configured", dependency="chain_client")
        if need_account and not self.chain_client.account:
            raise UnavailableDependencyError("Wallet not connected", dependency="chain_client")
        return self.chain_client

    def _require_signer(self) -> MessageSigner:
        if self.signer is None or not self.signer.address:
            raise UnavailableDependencyError("No connected signer", dependency="signer")
        return self.signer

    async def _require_schema(self, name: str, timeout: Optional[float]) -> str:
        uid = self.network.schema_uid(name)
        if uid is None:
            raise UnavailableDependencyError(
                f"Schema {name} not deployed on {self.network.chain_name}", dependency="schema"
            )
        if self.schema_registry is not None:
            exists = await self._call(
                self.schema_registry.schema_exists(uid),
                self._timeout(timeout, self.config.confirmation_timeout),
                "check schema",
            )
            if not exists:
                raise UnavailableDependencyError(
                    f"Schema {name} ({uid}) not registered on {self.network.chain_name}",
                    dependency="schema",
                )
        return uid

    def _request(
        self,
        schema_uid: str,
        recipient: str,
        data: bytes,
        revocable: Optional[bool] = None,
    ) -> AttestationRequest:
        return AttestationRequest(
            schema_uid=schema_uid,
            recipient=recipient,
            data=data,
            expiration_time=self.config.expiration_time,
            revocable=self.config.revocable if revocable is None else revocable,
        )

    async def _confirm(self, chain: ChainClient, tx_hash: bytes, timeout: Optional[float]) -> str:
        logs = await self._call(
            chain.wait_for_receipt(tx_hash),
            self._timeout(timeout, self.config.confirmation_timeout),
            "wait for confirmation",
            tx_hash,
        )
        uid = find_attested_uid(logs)
        if uid is None:
            raise ExternalCallFailure(
                "Transaction confirmed without an Attested event",
                operation="wait for confirmation",
                tx_hash=tx_hash,
            )
        logger.info(f"Attestation confirmed: {uid}")
        return uid

    @staticmethod
    def _timeout(override: Optional[float], default: Optional[float]) -> Optional[float]:
        return override if override is not None else default

    async def _call(
        self,
        awaitable: Awaitable[Any],
        timeout: Optional[float],
        operation: str,
        tx_hash: Optional[bytes] = None,
    ) -> Any:
        """Await a collaborator call, converting every failure into ExternalCallFailure."""
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            raise ExternalCallFailure(f"{operation} timed out after {timeout}s", operation, tx_hash) from e
        except asyncio.CancelledError as e:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            raise ExternalCallFailure(f"{operation} was cancelled", operation, tx_hash) from e
        except Exception as e:
            raise ExternalCallFailure(f"{operation} failed: {e}", operation, tx_hash) from e

    @staticmethod
    def _failure(
        kind: FailureKind,
        error: Exception,
        mode: Union[AttestationMode, str],
        tx_hash: Optional[bytes] = None,
    ) -> AttestationFailure:
        label = mode.value if isinstance(mode, AttestationMode) else mode
        logger.warning(f"{label} attestation failed ({kind.value}): {error}")
        return AttestationFailure(kind=kind, message=str(error), mode=label, tx_hash=tx_hash)


# =============================================================================
# Input Checks
# =============================================================================


def _prepare_claim(
    claim: ClaimInput,
    mode: AttestationMode,
    claim_type: Optional[Type[AttestationClaim]] = None,
) -> AttestationClaim:
    if isinstance(claim, AttestationClaim):
        if claim_type is not None and not isinstance(claim, claim_type):
            raise ValidationError(f"Expected a {claim_type.__name__}, got {type(claim).__name__}")
        prepared = claim
    elif isinstance(claim, Mapping):
        prepared = (claim_type or ForecastClaim).from_dict(dict(claim))
    else:
        raise ValidationError(f"Unsupported claim type: {type(claim).__name__}")
    if mode.value not in prepared.MODES:
        raise ValidationError(
            f"{prepared.DATA_TYPE} claims cannot be attested {mode.value}; "
            f"supported modes: {', '.join(prepared.MODES)}"
        )
    prepared.validate()
    return prepared


def _check_recipient(recipient: Optional[str]) -> None:
    if recipient is not None and not is_valid_address(recipient):
        raise ValidationError(f"Invalid recipient address: {recipient}", field="recipient")


def _check_uid(value: Any, name: str) -> None:
    ok, err = validate_hex_string(value, name, expected_bytes=HASH_LENGTH)
    if not ok:
        raise ValidationError(err, field=name)


__all__ = [
    "AttestationMode",
    "AttestationOutcome",
    "ClaimInput",
    "AttestationCoordinator",
    "build_offchain_message",
    "recover_offchain_signer",
]
