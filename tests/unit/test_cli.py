"""
Unit tests for the calibr command line interface (click CliRunner).
"""

import json

import pytest
from click.testing import CliRunner

from calibr.cli.main import cli, decrypt_wallet_key
from calibr.crypto import keypair_from_private_key

CLAIM = {
    "probability": 7500,
    "marketId": "market-1",
    "platform": "LIMITLESS",
    "confidence": 8000,
    "reasoning": "strong signal",
    "isPublic": True,
}


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.delenv("CALIBR_CHAIN_ID", raising=False)
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def claim_file(tmp_path):
    path = tmp_path / "claim.json"
    path.write_text(json.dumps(CLAIM))
    return str(path)


def invoke(runner, data_dir, *args):
    return runner.invoke(cli, ["--data-dir", str(data_dir), *args])


class TestWallet:
    def test_create_and_list(self, runner, data_dir):
        result = invoke(runner, data_dir, "wallet", "create", "--name", "alice", "--password", "pw")
        assert result.exit_code == 0
        assert "Wallet created: alice" in result.output

        wallet = json.loads((data_dir / "wallets" / "alice.json").read_text())
        assert "private_key" not in wallet
        assert wallet["address"] in result.output

        listing = invoke(runner, data_dir, "wallet", "list")
        assert f"alice: {wallet['address']}" in listing.output

    def test_decrypt_roundtrip(self, runner, data_dir):
        invoke(runner, data_dir, "wallet", "create", "--name", "bob", "--password", "secret")
        wallet = json.loads((data_dir / "wallets" / "bob.json").read_text())

        key = decrypt_wallet_key(wallet, "bob", "secret")
        assert keypair_from_private_key(key).address == wallet["address"]
        assert decrypt_wallet_key(wallet, "bob", "wrong") is None
        assert decrypt_wallet_key({}, "bob", "secret") is None

    def test_refuses_overwrite(self, runner, data_dir):
        invoke(runner, data_dir, "wallet", "create", "--name", "a", "--password", "pw")
        result = invoke(runner, data_dir, "wallet", "create", "--name", "a", "--password", "pw")
        assert result.exit_code == 1

    def test_list_empty(self, runner, data_dir):
        result = invoke(runner, data_dir, "wallet", "list")
        assert "No wallets found." in result.output


class TestTreeAndDisclosure:
    def test_tree(self, runner, data_dir, claim_file):
        result = invoke(runner, data_dir, "tree", claim_file)
        assert result.exit_code == 0
        assert "Merkle root: 0x" in result.output
        assert "Depth: 3" in result.output

    def test_tree_with_debug_logging(self, runner, data_dir, claim_file):
        result = runner.invoke(cli, ["--debug", "--data-dir", str(data_dir), "tree", claim_file])
        assert result.exit_code == 0
        assert "Merkle root: 0x" in result.output

    def test_tree_json(self, runner, data_dir, claim_file):
        result = invoke(runner, data_dir, "tree", claim_file, "--json")
        data = json.loads(result.output)
        assert len(data["leaves"]) == 6

    def test_invalid_claim(self, runner, data_dir, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({**CLAIM, "probability": 10001}))
        result = invoke(runner, data_dir, "tree", str(path))
        assert result.exit_code == 1
        assert "Invalid claim" in result.output

    def test_disclose_then_verify(self, runner, data_dir, claim_file, tmp_path):
        proof_path = tmp_path / "proof.json"
        result = invoke(runner, data_dir, "disclose", claim_file, "-f", "probability", "-f", "marketId",
                        "-o", str(proof_path))
        assert result.exit_code == 0

        proof = json.loads(proof_path.read_text())
        assert [f["name"] for f in proof["revealedFields"]] == ["probability", "marketId"]

        verified = invoke(runner, data_dir, "verify", str(proof_path), "--root", proof["merkleRoot"])
        assert verified.exit_code == 0
        assert "✓ probability" in verified.output

    def test_disclose_unknown_field(self, runner, data_dir, claim_file):
        result = invoke(runner, data_dir, "disclose", claim_file, "-f", "nope")
        assert result.exit_code == 1
        assert "Unknown field" in result.output

    def test_verify_tampered(self, runner, data_dir, claim_file, tmp_path):
        result = invoke(runner, data_dir, "disclose", claim_file, "-f", "probability")
        proof = json.loads(result.output)
        proof["revealedFields"][0]["value"] = 8000
        path = tmp_path / "tampered.json"
        path.write_text(json.dumps(proof))

        verified = invoke(runner, data_dir, "verify", str(path))
        assert verified.exit_code == 1
        assert "✗ probability" in verified.output

    def test_verify_wrong_root(self, runner, data_dir, claim_file, tmp_path):
        path = tmp_path / "proof.json"
        invoke(runner, data_dir, "disclose", claim_file, "-f", "platform", "-o", str(path))
        verified = invoke(runner, data_dir, "verify", str(path), "--root", "0x" + "11" * 32)
        assert verified.exit_code == 1

    def test_verify_malformed(self, runner, data_dir, tmp_path):
        path = tmp_path / "junk.json"
        path.write_text("{}")
        result = invoke(runner, data_dir, "verify", str(path))
        assert result.exit_code == 1


class TestAttest:
    @pytest.mark.parametrize("mode", ["onchain", "offchain", "private"])
    def test_modes_with_ephemeral_key(self, runner, data_dir, claim_file, mode):
        result = invoke(runner, data_dir, "attest", claim_file, "--mode", mode)
        assert result.exit_code == 0
        assert '"uid"' in result.output

    def test_with_wallet(self, runner, data_dir, claim_file):
        invoke(runner, data_dir, "wallet", "create", "--name", "alice", "--password", "pw")
        result = invoke(runner, data_dir, "attest", claim_file, "--wallet", "alice", "--password", "pw")
        assert result.exit_code == 0

    def test_wrong_password(self, runner, data_dir, claim_file):
        invoke(runner, data_dir, "wallet", "create", "--name", "alice", "--password", "pw")
        result = invoke(runner, data_dir, "attest", claim_file, "--wallet", "alice", "--password", "nope")
        assert result.exit_code == 1
        assert "Wrong password" in result.output

    def test_missing_wallet(self, runner, data_dir, claim_file):
        result = invoke(runner, data_dir, "attest", claim_file, "--wallet", "ghost", "--password", "pw")
        assert result.exit_code == 1

    @pytest.mark.parametrize("mode,code", [("onchain", 0), ("private", 0), ("offchain", 1)])
    def test_identity_claim(self, runner, data_dir, tmp_path, mode, code):
        path = tmp_path / "identity.json"
        path.write_text(json.dumps({
            "platform": "LIMITLESS",
            "platformUserId": "user-42",
            "proofHash": "0x" + "ab" * 32,
            "verified": True,
            "verifiedAt": 1700000000,
        }))
        result = invoke(runner, data_dir, "attest", str(path), "--type", "identity", "--mode", mode)
        assert result.exit_code == code

    def test_type_mismatch(self, runner, data_dir, claim_file):
        result = invoke(runner, data_dir, "attest", claim_file, "--type", "calibration")
        assert result.exit_code == 1
        assert "brierScore" in result.output

    def test_undeployed_network_fails(self, runner, data_dir, claim_file, monkeypatch):
        monkeypatch.setenv("CALIBR_CHAIN_ID", "8453")
        result = invoke(runner, data_dir, "attest", claim_file, "--mode", "private")
        assert result.exit_code == 1
        assert "unavailable_dependency" in result.output


class TestDemo:
    def test_demo_runs(self, runner, data_dir):
        result = invoke(runner, data_dir, "demo")
        assert result.exit_code == 0
        assert "Recovered signer matches: True" in result.output
        assert "Disclosure verifies: True" in result.output
        assert "Revoked in tx: 0x" in result.output
        assert "Demo complete!" in result.output
