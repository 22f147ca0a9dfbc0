"""
Network and attestation configuration for Calibr.

Defines EAS contract locations, deployed schema UIDs per chain, and the
timeouts applied to wallet signatures and chain confirmations.

Configuration is always passed explicitly to the coordinator; there is no
module-level config instance.
"""

import json
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from calibr.core.errors import UnavailableDependencyError, ValidationError

# Predeploys on OP-stack chains
EAS_PREDEPLOY = "0x4200000000000000000000000000000000000021"
SCHEMA_REGISTRY_PREDEPLOY = "0x4200000000000000000000000000000000000020"

BASE_CHAIN_ID = 8453
BASE_SEPOLIA_CHAIN_ID = 84532

ENV_PREFIX = "CALIBR_"


@dataclass
class NetworkConfig:
    """EAS deployment on one chain"""

    chain_id: int
    chain_name: str
    eas_contract: str = EAS_PREDEPLOY
    schema_registry: str = SCHEMA_REGISTRY_PREDEPLOY
    explorer_url: str = ""
    # Schema name (FORECAST, PRIVATE_DATA, ...) -> deployed schema UID
    schema_uids: Dict[str, str] = field(default_factory=dict)

    def schema_uid(self, name: str) -> Optional[str]:
        """Deployed UID for a schema name, or None if not deployed here."""
        return self.schema_uids.get(name.upper())

    def attestation_url(self, uid: str) -> str:
        return f"{self.explorer_url}/attestation/view/{uid}"

    def schema_url(self, schema_uid: str) -> str:
        return f"{self.explorer_url}/schema/view/{schema_uid}"


def base_sepolia_network() -> NetworkConfig:
    """Base Sepolia with the deployed Calibr schemas."""
    return NetworkConfig(
        chain_id=BASE_SEPOLIA_CHAIN_ID,
        chain_name="Base Sepolia",
        explorer_url="https://base-sepolia.easscan.org",
        schema_uids={
            "FORECAST": "0xbeebd6600cf48d34e814e0aa0feb1f2bebd547a972963796e03c14d1ab4ef5a1",
            "CALIBRATION": "0xd44c6125a33083aec2cf763b785bc865b2bb4b837902289bbbd72dfb544ba579",
            "IDENTITY": "0xc0b01a6619072a6bf30cc335a60774321d479a9c7f3ec4627df17fe679b33116",
            "SUPERFORECASTER": "0x524a06a27768fa90080629c6f1c750efb55c5903fca64be95a6623bfe4a4b248",
            "REPUTATION": "0x53f34419e628bd88263a78a89cb7be1c2097c67f21062b5a966d37e15249bbff",
            "PRIVATE_DATA": "0xa2ad56fdcf09f2db43e242b8b284e782ba5d4f539c7baf5a5bedfedc7080b02d",
        },
    )


def base_network() -> NetworkConfig:
    """Base mainnet. Schemas not deployed yet."""
    return NetworkConfig(
        chain_id=BASE_CHAIN_ID,
        chain_name="Base",
        explorer_url="https://base.easscan.org",
    )


NETWORK_PRESETS = {
    BASE_CHAIN_ID: base_network,
    BASE_SEPOLIA_CHAIN_ID: base_sepolia_network,
}


def get_network(chain_id: int) -> NetworkConfig:
    """
    Fresh NetworkConfig for a known chain.

    Raises:
        UnavailableDependencyError: Unsupported chain ID
    """
    factory = NETWORK_PRESETS.get(chain_id)
    if factory is None:
        raise UnavailableDependencyError(f"Unsupported chain ID: {chain_id}", dependency="network")
    return factory()


@dataclass
class AttestationConfig:
    """Per-coordinator attestation parameters"""

    network: NetworkConfig = field(default_factory=base_sepolia_network)

    # Timeouts in seconds (None waits forever)
    signature_timeout: Optional[float] = 300.0  # human in the loop
    confirmation_timeout: Optional[float] = 120.0  # chain inclusion

    # Attestation request defaults
    revocable: bool = True
    expiration_time: int = 0  # 0 = never expires
    data_type: Optional[str] = None  # private attestation tag; None uses the claim type

    def with_network(self, network: NetworkConfig) -> "AttestationConfig":
        return replace(self, network=network)


def _read_file(config_path: Path) -> Dict[str, Any]:
    text = config_path.read_text(encoding="utf-8")
    if config_path.suffix == ".toml":
        return tomllib.loads(text)
    return json.loads(text)


def _float_or_none(value: Any, name: str) -> Optional[float]:
    if value is None or value == "" or str(value).lower() == "none":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a number, got {value!r}") from e


def _chain_id(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"chain_id must be an integer, got {value!r}")


def load_config(config_path: Optional[str] = None, env_file: Optional[str] = None) -> AttestationConfig:
    """
    Load configuration from file and environment.

    Precedence (highest first): CALIBR_* environment variables, the config
    file (JSON or TOML), built-in network presets.

    File layout:
        chain_id = 84532
        signature_timeout = 300
        confirmation_timeout = 120
        revocable = true
        [schema_uids]
        FORECAST = "0x..."

    Args:
        config_path: Optional path to a .json or .toml file
        env_file: Optional .env file; defaults to python-dotenv discovery

    Returns:
        AttestationConfig instance
    """
    load_dotenv(env_file)

    data: Dict[str, Any] = {}
    if config_path:
        data = _read_file(Path(config_path))

    chain_id = _chain_id(os.getenv(f"{ENV_PREFIX}CHAIN_ID", data.get("chain_id", BASE_SEPOLIA_CHAIN_ID)))
    if chain_id in NETWORK_PRESETS:
        network = get_network(chain_id)
    else:
        network = NetworkConfig(chain_id=chain_id, chain_name=data.get("chain_name", f"chain-{chain_id}"))

    for key in ("chain_name", "eas_contract", "schema_registry", "explorer_url"):
        if key in data:
            setattr(network, key, data[key])

    for name, uid in data.get("schema_uids", {}).items():
        network.schema_uids[name.upper()] = uid
    for key, value in os.environ.items():
        if key.startswith(f"{ENV_PREFIX}SCHEMA_") and value:
            network.schema_uids[key[len(f"{ENV_PREFIX}SCHEMA_"):]] = value

    config = AttestationConfig(network=network)
    config.signature_timeout = _float_or_none(
        os.getenv(f"{ENV_PREFIX}SIGNATURE_TIMEOUT", data.get("signature_timeout", config.signature_timeout)),
        "signature_timeout",
    )
    config.confirmation_timeout = _float_or_none(
        os.getenv(f"{ENV_PREFIX}CONFIRMATION_TIMEOUT", data.get("confirmation_timeout", config.confirmation_timeout)),
        "confirmation_timeout",
    )
    config.revocable = bool(data.get("revocable", config.revocable))
    config.expiration_time = int(data.get("expiration_time", config.expiration_time))
    config.data_type = data.get("data_type", config.data_type)
    return config
