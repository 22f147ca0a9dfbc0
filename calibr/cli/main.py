"""
Calibr CLI - forecast attestations and selective disclosure from the shell

Wallet keys are stored Fernet-encrypted under ``<data-dir>/wallets``. The
``attest`` and ``demo`` commands run against the in-memory EAS simulation, so
nothing here needs an RPC endpoint.
"""

import asyncio
import base64
import hashlib
import json
import os
from pathlib import Path
from typing import Optional

import click

from calibr.utils.logger import LOG_LEVEL_ENV, setup_logging

PBKDF2_ITERATIONS = 100000


def _wallet_fernet(wallet_name: str, password: str):
    """Fernet cipher keyed by PBKDF2(password, salt=wallet name)."""
    from cryptography.fernet import Fernet

    key = base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac("sha256", password.encode(), wallet_name.encode(), PBKDF2_ITERATIONS)
    )
    return Fernet(key)


def decrypt_wallet_key(wallet_data: dict, wallet_name: str, password: str) -> Optional[bytes]:
    """
    Decrypt a wallet's private key.

    Args:
        wallet_data: Loaded wallet JSON data
        wallet_name: Wallet name (used as salt)
        password: User's password

    Returns:
        Decrypted private key bytes, or None on a wrong password or bad file
    """
    from cryptography.fernet import InvalidToken

    if "encrypted_private_key" not in wallet_data:
        return None
    try:
        return _wallet_fernet(wallet_name, password).decrypt(wallet_data["encrypted_private_key"].encode())
    except InvalidToken:
        return None


def _load_json(path: str) -> dict:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_claim(path: str, type_name: str = "forecast"):
    from calibr.core.attestation import claim_type

    claim = claim_type(type_name).from_dict(_load_json(path))
    claim.validate()
    return claim


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default="~/.calibr", help="Data directory")
@click.option("--config", "config_path", default=None, help="Config file (.json or .toml)")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, config_path):
    """Calibr - Forecast attestations with selective disclosure"""
    level = "DEBUG" if debug else os.environ.get(LOG_LEVEL_ENV, "WARNING")
    setup_logging(level=level)

    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = Path(data_dir).expanduser()
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)
    ctx.obj["config_path"] = config_path


# =============================================================================
# Wallet Commands
# =============================================================================


@cli.group()
def wallet():
    """Wallet management commands"""
    pass


@wallet.command("create")
@click.option("--name", default="default", help="Wallet name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Encryption password")
@click.pass_context
def wallet_create(ctx, name, password):
    """Create a new encrypted signing wallet"""
    from calibr.crypto import generate_keypair, bytes_to_hex

    kp = generate_keypair()

    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name}.json"
    if wallet_path.exists():
        click.echo(f"❌ Wallet '{name}' already exists")
        ctx.exit(1)
    wallet_path.parent.mkdir(parents=True, exist_ok=True)

    wallet_data = {
        "name": name,
        "address": kp.address,
        "encrypted_private_key": _wallet_fernet(name, password).encrypt(kp.private_key).decode("utf-8"),
        "public_key": bytes_to_hex(kp.public_key),
    }
    wallet_path.write_text(json.dumps(wallet_data, indent=2))

    click.echo(f"✓ Wallet created: {name}")
    click.echo(f"  Address: {kp.address}")
    click.echo(f"  Saved to: {wallet_path}")
    click.echo("  ⚠️  Remember your password - it cannot be recovered!")


@wallet.command("list")
@click.pass_context
def wallet_list(ctx):
    """List all wallets"""
    wallet_dir = ctx.obj["data_dir"] / "wallets"
    wallet_files = sorted(wallet_dir.glob("*.json")) if wallet_dir.exists() else []
    if not wallet_files:
        click.echo("No wallets found.")
        return

    for wallet_file in wallet_files:
        data = json.loads(wallet_file.read_text())
        click.echo(f"  {data['name']}: {data['address']}")


# =============================================================================
# Merkle Commands
# =============================================================================


@cli.command("tree")
@click.argument("claim_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the tree as JSON")
@click.pass_context
def tree(ctx, claim_file, as_json):
    """Build the Merkle tree of a forecast claim"""
    from calibr.core.errors import ValidationError
    from calibr.core.merkle import create_merkle_tree
    from calibr.crypto import bytes_to_hex

    try:
        claim = _load_claim(claim_file)
        data = create_merkle_tree(claim.to_fields())
    except (ValidationError, json.JSONDecodeError) as e:
        click.echo(f"❌ Invalid claim: {e}")
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(data.to_dict(), indent=2))
        return

    click.echo(f"Merkle root: {bytes_to_hex(data.root)}")
    click.echo(f"Depth: {data.depth}")
    for leaf in data.leaves:
        click.echo(f"  {leaf.index}. {leaf.name} ({leaf.type}) {bytes_to_hex(leaf.hash)[:18]}...")


@cli.command("disclose")
@click.argument("claim_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--field", "-f", "fields", multiple=True, required=True, help="Field to reveal (repeatable)")
@click.option("--output", "-o", default=None, help="Write the proof to a file")
@click.pass_context
def disclose(ctx, claim_file, fields, output):
    """Create a selective disclosure proof for some claim fields"""
    from calibr.core.errors import ValidationError
    from calibr.core.merkle import create_merkle_tree, generate_multi_proof

    try:
        claim = _load_claim(claim_file)
        data = create_merkle_tree(claim.to_fields())
    except (ValidationError, json.JSONDecodeError) as e:
        click.echo(f"❌ Invalid claim: {e}")
        ctx.exit(1)

    fields = list(dict.fromkeys(fields))
    index_of = {leaf.name: leaf.index for leaf in data.leaves}
    unknown = [name for name in fields if name not in index_of]
    if unknown:
        click.echo(f"❌ Unknown field(s): {', '.join(unknown)}")
        click.echo(f"   Available: {', '.join(index_of)}")
        ctx.exit(1)

    proof = generate_multi_proof(data, [index_of[name] for name in fields])
    text = proof.to_json(indent=2)

    if output:
        Path(output).write_text(text)
        click.echo(f"✓ Disclosure proof for {len(fields)} field(s) written to {output}")
    else:
        click.echo(text)


@cli.command("verify")
@click.argument("proof_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--root", default=None, help="Merkle root published on-chain")
@click.pass_context
def verify(ctx, proof_file, root):
    """Verify a selective disclosure proof"""
    from calibr.core.merkle import verify_disclosure_fields

    results = verify_disclosure_fields(Path(proof_file).read_text(encoding="utf-8"), expected_root=root)
    if not results:
        click.echo("❌ Malformed or empty disclosure proof")
        ctx.exit(1)

    for name, ok in results.items():
        click.echo(f"  {'✓' if ok else '✗'} {name}")

    if all(results.values()):
        click.echo("✅ Disclosure verified")
    else:
        click.echo("❌ Disclosure verification failed")
        ctx.exit(1)


# =============================================================================
# Attestation Commands
# =============================================================================


def _demo_coordinator(config, keypair):
    """Coordinator wired to a simulated chain and a local signer."""
    from calibr.core.attestation import AttestationCoordinator, InMemoryChainClient, LocalMessageSigner

    chain = InMemoryChainClient(
        account=keypair.address,
        registered_schemas=set(config.network.schema_uids.values()),
    )
    coordinator = AttestationCoordinator(
        config=config,
        chain_client=chain,
        signer=LocalMessageSigner(keypair),
        schema_registry=chain,
    )
    return coordinator, chain


@cli.command("attest")
@click.argument("claim_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--mode", default="onchain", type=click.Choice(["onchain", "offchain", "private"]), help="Attestation mode")
@click.option(
    "--type",
    "type_name",
    default="forecast",
    type=click.Choice(["forecast", "calibration", "identity", "superforecaster", "reputation"]),
    help="Claim type",
)
@click.option("--wallet", "wallet_name", default=None, help="Wallet name (default: ephemeral key)")
@click.option("--password", default=None, help="Wallet password")
@click.option("--recipient", default=None, help="Recipient address (default: attester)")
@click.option("--timeout", default=None, type=float, help="Timeout per external call, in seconds")
@click.pass_context
def attest(ctx, claim_file, mode, type_name, wallet_name, password, recipient, timeout):
    """Create an attestation against the demo chain"""
    from calibr.core.attestation import AttestationFailure
    from calibr.core.config import load_config
    from calibr.core.errors import AttestationError, ValidationError
    from calibr.crypto import generate_keypair, keypair_from_private_key

    try:
        config = load_config(ctx.obj["config_path"])
        claim = _load_claim(claim_file, type_name)
    except (AttestationError, OSError, json.JSONDecodeError) as e:
        click.echo(f"❌ {e}")
        ctx.exit(1)

    if wallet_name:
        wallet_path = ctx.obj["data_dir"] / "wallets" / f"{wallet_name}.json"
        if not wallet_path.exists():
            click.echo(f"❌ Wallet '{wallet_name}' not found")
            click.echo(f"   Create with: calibr wallet create --name {wallet_name}")
            ctx.exit(1)
        if password is None:
            password = click.prompt("Password", hide_input=True)
        private_key = decrypt_wallet_key(json.loads(wallet_path.read_text()), wallet_name, password)
        if private_key is None:
            click.echo("❌ Wrong password")
            ctx.exit(1)
        keypair = keypair_from_private_key(private_key)
    else:
        keypair = generate_keypair()

    coordinator, _ = _demo_coordinator(config, keypair)
    click.echo("⚠️  Demo mode: attestations are simulated, not broadcast")

    try:
        result = asyncio.run(coordinator.create(claim, mode=mode, recipient=recipient, timeout=timeout))
    except ValidationError as e:
        click.echo(f"❌ Invalid claim: {e}")
        ctx.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=2))
    if isinstance(result, AttestationFailure):
        ctx.exit(1)


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.pass_context
def demo(ctx):
    """Run the three attestation modes end to end"""
    from calibr.core.attestation import (
        AttestationFailure,
        ForecastClaim,
        FORECAST_SCHEMA,
        recover_offchain_signer,
    )
    from calibr.core.config import load_config
    from calibr.core.merkle import verify_disclosure
    from calibr.crypto import bytes_to_hex, generate_keypair

    click.echo("=" * 60)
    click.echo("  CALIBR - ATTESTATION DEMO")
    click.echo("=" * 60)
    click.echo()

    config = load_config(ctx.obj["config_path"])
    keypair = generate_keypair()
    coordinator, chain = _demo_coordinator(config, keypair)

    claim = ForecastClaim(
        probability=7500,
        market_id="market-1",
        platform="LIMITLESS",
        confidence=8000,
        reasoning="strong signal",
        is_public=True,
    )
    click.echo(f"📦 Network: {config.network.chain_name} ({config.network.chain_id})")
    click.echo(f"  ✓ Attester: {keypair.address}")
    click.echo()

    async def run():
        onchain = await coordinator.create(claim, mode="onchain")
        offchain = await coordinator.create(claim, mode="offchain")
        private = await coordinator.create(claim, mode="private")
        revoked = onchain
        if not isinstance(onchain, AttestationFailure):
            revoked = await coordinator.revoke("FORECAST", onchain.uid)
        return onchain, offchain, private, revoked

    onchain, offchain, private, revoked = asyncio.run(run())
    for result in (onchain, offchain, private, revoked):
        if isinstance(result, AttestationFailure):
            click.echo(f"❌ {result.mode} attestation failed: {result.message}")
            ctx.exit(1)

    click.echo("⛓️  On-chain attestation")
    click.echo(f"  ✓ UID: {onchain.uid}")
    click.echo(f"  ✓ Explorer: {onchain.explorer_url}")
    click.echo(f"  ✓ Revoked in tx: {bytes_to_hex(revoked.tx_hash)[:18]}...")
    click.echo()

    click.echo("✍️  Off-chain attestation")
    click.echo(f"  ✓ UID: {offchain.uid}")
    signer = recover_offchain_signer(offchain, coordinator.offchain_schema_id(), keypair.address)
    click.echo(f"  ✓ Recovered signer matches: {signer == keypair.address}")
    click.echo()

    click.echo("🔐 Private attestation")
    click.echo(f"  ✓ Merkle root: {bytes_to_hex(private.merkle_root)}")
    click.echo(f"  ✓ On-chain payload: {len(chain.submitted[-1].data)} bytes (fields: {len(private.leaves)})")
    proof = private.disclose(["probability", "marketId"])
    click.echo(f"  ✓ Revealed: {', '.join(proof.field_names)}")
    click.echo(f"  ✓ Disclosure verifies: {verify_disclosure(proof, expected_root=private.merkle_root)}")
    click.echo()

    click.echo("📊 Summary:")
    click.echo(f"  Attestations stored: {len(chain.records)}")
    click.echo(f"  Forecast schema fields: {', '.join(FORECAST_SCHEMA.field_names)}")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
