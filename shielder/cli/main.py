"""
Shielder CLI - Command Line Interface for the shielder client

Main entry point for all CLI commands.
"""

import asyncio
import logging
import secrets
import tempfile
from pathlib import Path

import click

from shielder.core.config import load_config
from shielder.errors import ShielderError
from shielder.utils.logger import get_logger, setup_logging

logger = get_logger("cli")


def run(coro):
    """Run a coroutine, turning client errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except ShielderError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (overrides SHIELDER_DATA_DIR)")
@click.option("--env-file", default=None, help="Path to a .env file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, env_file):
    """Shielder - client engine for a shielded pool"""
    config = load_config(env_file)

    level = logging.DEBUG if debug else config.log_level
    try:
        setup_logging(level=level, log_file=config.log_file)
    except ValueError as e:
        raise click.UsageError(f"{e} (check SHIELDER_LOG_LEVEL)") from e
    if data_dir:
        config.data_dir = Path(data_dir).expanduser()

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# TEE Commands
# =============================================================================


@cli.command("tee-key")
@click.option("--url", default=None, help="TEE service URL (overrides SHIELDER_TEE_URL)")
@click.option("--no-attestation", is_flag=True, help="Skip attestation checks")
@click.option("--root-key", default=None, help="Trusted attestation root public key (hex)")
@click.option("--measurement", multiple=True, help="Expected measurement as name=hex")
@click.pass_context
def tee_key(ctx, url, no_attestation, root_key, measurement):
    """Fetch, attest and print the TEE service session key"""
    from shielder.chain.http import HttpTransport
    from shielder.core.prover import MeasurementAttestationVerifier, TeeClient
    from shielder.crypto import hex_to_bytes

    config = ctx.obj["config"]
    url = url or config.tee_url
    if not url:
        raise click.UsageError("No TEE URL given (use --url or SHIELDER_TEE_URL)")

    verifier = None
    if root_key:
        expected = {}
        for item in measurement:
            name, _, value = item.partition("=")
            if not value:
                raise click.BadParameter(f"Expected name=hex, got {item}", param_hint="--measurement")
            expected[name] = value.lower()
        verifier = MeasurementAttestationVerifier(hex_to_bytes(root_key), expected)

    require_attestation = config.require_attestation and not no_attestation

    async def fetch():
        async with HttpTransport(timeout=config.http_timeout) as transport:
            client = TeeClient(
                transport,
                attestation_verifier=verifier,
                request_padded_length=config.request_padded_length,
                response_padded_length=config.response_padded_length,
            )
            await client.init(url, require_attestation=require_attestation)
            return client.service_public_key

    public_key = run(fetch())
    click.echo(f"TEE service: {url}")
    click.echo(f"  Public key: 0x{public_key.hex()}")
    click.echo(f"  Attested: {'yes' if require_attestation else 'no'}")


# =============================================================================
# Account Commands
# =============================================================================


@cli.command("accounts")
@click.pass_context
def accounts(ctx):
    """List persisted account states"""
    from shielder.core.state.types import account_state_from_json
    from shielder.core.storage import StorageManager

    config = ctx.obj["config"]
    storage = StorageManager(config.data_dir)
    try:
        states = storage.all_account_states()
        indices = storage.account_indices()
    finally:
        storage.close()

    if not states:
        click.echo("No accounts found")
        return

    index_by_token = {address: index for index, address in indices.items()}
    click.echo(f"{'Index':<6} {'Token':<44} {'Nonce':>6} {'Balance':>20}  Note index")
    click.echo("-" * 92)
    for address, raw in sorted(states.items(), key=lambda item: index_by_token.get(item[0], -1)):
        state = account_state_from_json(raw)
        note_index = state.current_note_index if state.is_indexed else "-"
        click.echo(
            f"{index_by_token.get(address, '?'):<6} {str(state.token):<44} "
            f"{state.nonce:>6} {state.balance:>20}  {note_index}"
        )


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--tee/--local", default=True, help="Prove through a simulated TEE or locally")
@click.option("--amount", default=1000, type=int, help="Initial shielded amount")
@click.option("--relayer-fee", default=10, type=int, help="Relayer fee")
@click.pass_context
def demo(ctx, tee, amount, relayer_fee):
    """Run an end-to-end demo on an in-memory chain"""
    from shielder.chain.memory import InMemoryShielderChain, LocalRelayer
    from shielder.client import ShielderClient
    from shielder.core.prover import MockProver, TeeClient, TeeProver
    from shielder.core.prover.tee_service import MockTeeService, MockTeeTransport
    from shielder.core.state.types import native_token
    from shielder.core.storage import StorageManager

    config = ctx.obj["config"]
    caller = "0x" + "11" * 20
    recipient = "0x" + "22" * 20
    relayer_address = "0x" + "33" * 20

    click.echo("=" * 60)
    click.echo("  SHIELDER - DEMO")
    click.echo("=" * 60)
    click.echo()

    async def scenario(data_dir: Path):
        verifier = MockProver()
        chain = InMemoryShielderChain(
            verifier, contract_version=config.contract_version, chain_id=config.chain_id
        )
        relayer = LocalRelayer(chain, relayer_address, fee=relayer_fee)

        transport = None
        if tee:
            service = MockTeeService(
                MockProver(key=verifier.key),
                request_padded_length=config.request_padded_length,
                response_padded_length=config.response_padded_length,
            )
            transport = MockTeeTransport(service)
            tee_client = TeeClient(
                transport,
                attestation_verifier=service.trust_criteria(),
                request_padded_length=config.request_padded_length,
                response_padded_length=config.response_padded_length,
            )
            await tee_client.init(transport.base_url, require_attestation=True)
            prover = TeeProver(tee_client, verifier)
            click.echo("  ✓ TEE session key attested")
        else:
            prover = verifier

        storage = StorageManager(data_dir)
        client = ShielderClient(
            secrets.token_bytes(32),
            chain,
            relayer,
            prover,
            storage,
            chain_id=config.chain_id,
            contract_version=config.contract_version,
            sync_callback=lambda tx: click.echo(f"  ↻ {tx!r}"),
        )
        token = native_token()

        try:
            click.echo(f"🔐 Shielding {amount}...")
            await client.shield(token, amount, caller, chain.submit_new_account)
            await client.sync(token)

            click.echo(f"🔐 Depositing {amount // 2}...")
            await client.shield(token, amount // 2, caller, chain.submit_deposit)
            await client.sync(token)

            withdrawn = amount // 3
            click.echo(f"💸 Withdrawing {withdrawn} through the relayer...")
            await client.withdraw(token, withdrawn, recipient)
            await client.sync(token)

            state = await client.account_state(token)
        finally:
            storage.close()

        click.echo()
        click.echo("📊 Final state:")
        click.echo(f"  Nonce: {state.nonce}")
        click.echo(f"  Balance: {state.balance}")
        click.echo(f"  Chain: {chain.block_number} blocks, {len(chain.tree)} notes")
        if transport is not None:
            click.echo(f"  TEE request sizes: {sorted(set(transport.request_sizes))}")
            click.echo(f"  TEE response sizes: {sorted(set(transport.response_sizes))}")

    with tempfile.TemporaryDirectory() as tmp:
        run(scenario(Path(tmp)))

    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
