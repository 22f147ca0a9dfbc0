"""
Unit tests for network and attestation configuration.
"""

import json
import os

import pytest

from calibr.core.config import (
    BASE_CHAIN_ID,
    BASE_SEPOLIA_CHAIN_ID,
    AttestationConfig,
    NetworkConfig,
    base_network,
    get_network,
    load_config,
)
from calibr.core.errors import UnavailableDependencyError, ValidationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("CALIBR_"):
            monkeypatch.delenv(key)


class TestNetworks:
    def test_base_sepolia_has_schemas(self):
        network = get_network(BASE_SEPOLIA_CHAIN_ID)
        assert network.chain_name == "Base Sepolia"
        assert network.schema_uid("FORECAST").startswith("0x")
        assert network.schema_uid("private_data") == network.schema_uids["PRIVATE_DATA"]

    def test_base_mainnet_has_no_schemas(self):
        assert get_network(BASE_CHAIN_ID).schema_uid("FORECAST") is None

    def test_unknown_chain(self):
        with pytest.raises(UnavailableDependencyError):
            get_network(1)

    def test_presets_are_fresh(self):
        a = get_network(BASE_SEPOLIA_CHAIN_ID)
        a.schema_uids["FORECAST"] = "0xdead"
        assert get_network(BASE_SEPOLIA_CHAIN_ID).schema_uids["FORECAST"] != "0xdead"

    def test_explorer_urls(self):
        network = base_network()
        assert network.attestation_url("0xabc") == "https://base.easscan.org/attestation/view/0xabc"
        assert network.schema_url("0xdef") == "https://base.easscan.org/schema/view/0xdef"


class TestAttestationConfig:
    def test_defaults(self):
        config = AttestationConfig()
        assert config.network.chain_id == BASE_SEPOLIA_CHAIN_ID
        assert config.revocable is True
        assert config.expiration_time == 0
        assert config.data_type is None

    def test_with_network(self):
        config = AttestationConfig(signature_timeout=5)
        other = config.with_network(NetworkConfig(chain_id=1, chain_name="test"))
        assert other.network.chain_id == 1
        assert other.signature_timeout == 5
        assert config.network.chain_id == BASE_SEPOLIA_CHAIN_ID


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path):
        config = load_config(env_file=str(tmp_path / "missing.env"))
        assert config.network.chain_id == BASE_SEPOLIA_CHAIN_ID
        assert config.signature_timeout == 300.0

    def test_json_file(self, tmp_path):
        path = tmp_path / "calibr.json"
        path.write_text(json.dumps({
            "chain_id": BASE_CHAIN_ID,
            "confirmation_timeout": 30,
            "schema_uids": {"forecast": "0x" + "11" * 32},
        }))
        config = load_config(str(path), env_file=str(tmp_path / "none.env"))
        assert config.network.chain_id == BASE_CHAIN_ID
        assert config.confirmation_timeout == 30.0
        assert config.network.schema_uid("FORECAST") == "0x" + "11" * 32

    def test_toml_file(self, tmp_path):
        path = tmp_path / "calibr.toml"
        path.write_text(
            'chain_id = 31337\n'
            'chain_name = "anvil"\n'
            'explorer_url = "http://localhost"\n'
            'signature_timeout = "none"\n'
            '[schema_uids]\n'
            'PRIVATE_DATA = "0x' + "22" * 32 + '"\n'
        )
        config = load_config(str(path), env_file=str(tmp_path / "none.env"))
        assert config.network.chain_id == 31337
        assert config.network.chain_name == "anvil"
        assert config.signature_timeout is None
        assert config.network.schema_uid("PRIVATE_DATA") == "0x" + "22" * 32

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "calibr.json"
        path.write_text(json.dumps({"signature_timeout": 10}))
        monkeypatch.setenv("CALIBR_SIGNATURE_TIMEOUT", "99")
        monkeypatch.setenv("CALIBR_SCHEMA_FORECAST", "0x" + "33" * 32)
        config = load_config(str(path), env_file=str(tmp_path / "none.env"))
        assert config.signature_timeout == 99.0
        assert config.network.schema_uid("FORECAST") == "0x" + "33" * 32

    def test_env_chain_id(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CALIBR_CHAIN_ID", str(BASE_CHAIN_ID))
        config = load_config(env_file=str(tmp_path / "none.env"))
        assert config.network.chain_name == "Base"

    def test_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("CALIBR_CONFIRMATION_TIMEOUT=42\n")
        try:
            config = load_config(env_file=str(env_file))
            assert config.confirmation_timeout == 42.0
        finally:
            os.environ.pop("CALIBR_CONFIRMATION_TIMEOUT", None)

    def test_bad_timeout(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CALIBR_SIGNATURE_TIMEOUT", "soon")
        with pytest.raises(ValidationError):
            load_config(env_file=str(tmp_path / "none.env"))

    def test_bad_chain_id_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CALIBR_CHAIN_ID", "base")
        with pytest.raises(ValidationError):
            load_config(env_file=str(tmp_path / "none.env"))

    @pytest.mark.parametrize("chain_id", ["sepolia", None, 1.5])
    def test_bad_chain_id_file(self, tmp_path, chain_id):
        path = tmp_path / "calibr.json"
        path.write_text(json.dumps({"chain_id": chain_id}))
        with pytest.raises(ValidationError):
            load_config(str(path), env_file=str(tmp_path / "none.env"))
