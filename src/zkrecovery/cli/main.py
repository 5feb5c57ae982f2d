#!/usr/bin/env python3
"""
zkrecovery CLI - Guardian Tooling

Provides CLI interface for preparing ZK recovery:
- Compute the guardian commitment to store on an account
- Compute the nullifier and public inputs for a recovery transition
- Produce and verify development proofs for local testing
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from zkrecovery import __version__
from zkrecovery.core.circuit import DevProver, DevVerifier, RecoveryCircuit, RecoveryWitness
from zkrecovery.core.config import Config
from zkrecovery.core.crypto_utils import normalize_address
from zkrecovery.core.field_hash import compute_commitment
from zkrecovery.core.logging_config import setup_logging
from zkrecovery.core.proof_verifier import build_proof_verifier, validate_public_inputs
from zkrecovery.core.recovery_exceptions import RecoveryError

logger = logging.getLogger(__name__)
console = Console()

PUBLIC_INPUT_LABELS = ("nullifier_hash", "guardian_commitment", "new_owner", "current_owner")


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _emit_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2))


def _secret_options(func):
    """Guardian secret options shared by every command."""
    func = click.option(
        "--secret-answer",
        envvar="ZKR_SECRET_ANSWER",
        prompt=True,
        hide_input=True,
        help="Guardian secret answer (word, decimal or 0x-hex)",
    )(func)
    func = click.option(
        "--secret-key",
        envvar="ZKR_SECRET_KEY",
        prompt=True,
        hide_input=True,
        help="Guardian secret key (decimal or 0x-hex)",
    )(func)
    return func


def _transition_options(func):
    """Owner transition options for nullifier-bound commands."""
    func = click.option("--current-owner", required=True, help="Owner address being replaced")(func)
    func = click.option("--new-owner", required=True, help="Owner address to install")(func)
    return func


def _witness(secret_key: str, secret_answer: str, new_owner: str, current_owner: str) -> RecoveryWitness:
    return RecoveryWitness(
        secret_key=secret_key,
        secret_answer=secret_answer,
        new_owner=normalize_address(new_owner),
        current_owner=normalize_address(current_owner),
    )


def _public_inputs_table(title: str, words: list[bytes]) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Input", style="cyan")
    table.add_column("Value (bytes32)", style="green", overflow="fold")
    for index, (label, word) in enumerate(zip(PUBLIC_INPUT_LABELS, words)):
        table.add_row(str(index), label, "0x" + word.hex())
    return table


@click.group()
@click.option("--json", "json_output", is_flag=True, help="Output raw JSON")
@click.option(
    "--log-level",
    default=lambda: Config.LOG_LEVEL,
    show_default="ZKR_LOG_LEVEL or WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Log level for structured logs on stderr",
)
@click.version_option(__version__, prog_name="zkrecovery")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, log_level: str):
    """
    zkrecovery - guardian recovery tooling for smart accounts.

    Derive guardian commitments, recovery nullifiers and circuit public
    inputs, and produce development proofs for local testing.
    """
    ctx.ensure_object(dict)
    ctx.obj["json_output"] = json_output
    setup_logging(level=log_level)


@cli.command("commitment")
@_secret_options
@click.pass_context
def commitment_cmd(ctx: click.Context, secret_key: str, secret_answer: str):
    """
    Compute the guardian commitment H(secret_key, secret_answer).

    Example:
        zkrecovery commitment --secret-key 0x2a --secret-answer mango
    """
    try:
        commitment = compute_commitment(secret_key, secret_answer)
    except (RecoveryError, ValueError, TypeError) as exc:
        _handle_cli_error(exc)
        return

    if ctx.obj.get("json_output"):
        _emit_json({"commitment": commitment.hex()})
        return

    console.print(Panel(
        f"[green]{commitment.hex()}[/]\n"
        f"[dim]Store with setGuardianCommitment(bytes32)[/]",
        title="[cyan]Guardian Commitment",
        border_style="cyan",
    ))


@cli.command("nullifier")
@_secret_options
@_transition_options
@click.pass_context
def nullifier_cmd(
    ctx: click.Context,
    secret_key: str,
    secret_answer: str,
    new_owner: str,
    current_owner: str,
):
    """
    Compute the nullifier binding a recovery to one owner transition.

    Example:
        zkrecovery nullifier --secret-key 0x2a --secret-answer mango \\
            --new-owner 0xNEW... --current-owner 0xOLD...
    """
    try:
        public = RecoveryCircuit().public_inputs(_witness(secret_key, secret_answer, new_owner, current_owner))
    except (RecoveryError, ValueError, TypeError) as exc:
        _handle_cli_error(exc)
        return

    if ctx.obj.get("json_output"):
        _emit_json({
            "nullifier_hash": public.nullifier_hash.hex(),
            "new_owner": public.new_owner,
            "current_owner": public.current_owner,
        })
        return

    console.print(Panel(
        f"[green]{public.nullifier_hash.hex()}[/]\n"
        f"[cyan]New owner:[/] {public.new_owner}\n"
        f"[cyan]Current owner:[/] {public.current_owner}",
        title="[cyan]Recovery Nullifier",
        border_style="cyan",
    ))


@cli.command("public-inputs")
@_secret_options
@_transition_options
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the inputs as concatenated 32-byte words (bb public_inputs format)",
)
@click.pass_context
def public_inputs_cmd(
    ctx: click.Context,
    secret_key: str,
    secret_answer: str,
    new_owner: str,
    current_owner: str,
    output: Optional[Path],
):
    """
    Compute the four circuit public inputs in verifier order.

    Order: nullifier_hash, guardian_commitment, new_owner, current_owner.
    """
    try:
        public = RecoveryCircuit().public_inputs(_witness(secret_key, secret_answer, new_owner, current_owner))
        words = public.encode()
        if output is not None:
            output.write_bytes(b"".join(words))
    except (RecoveryError, ValueError, TypeError, OSError) as exc:
        _handle_cli_error(exc)
        return

    if ctx.obj.get("json_output"):
        _emit_json({
            "public_inputs": ["0x" + word.hex() for word in words],
            "output": str(output) if output else None,
        })
        return

    console.print(_public_inputs_table("Recovery Public Inputs", words))
    if output is not None:
        console.print(f"[green]Written to {output}[/]")


@cli.command("dev-prove")
@_secret_options
@_transition_options
@click.option(
    "--proving-key",
    envvar="ZKR_DEV_PROVING_KEY",
    required=True,
    help="Development proving key shared with the dev verifier",
)
@click.option(
    "--proof-out",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the raw proof bytes to this file",
)
@click.pass_context
def dev_prove_cmd(
    ctx: click.Context,
    secret_key: str,
    secret_answer: str,
    new_owner: str,
    current_owner: str,
    proving_key: str,
    proof_out: Optional[Path],
):
    """
    Produce a development proof for a recovery transition.

    Development proofs are HMAC tags, not zero-knowledge proofs. They are
    accepted only by a verifier configured with the same proving key.
    """
    try:
        proof, public = DevProver(proving_key).prove(
            _witness(secret_key, secret_answer, new_owner, current_owner)
        )
        if proof_out is not None:
            proof_out.write_bytes(proof)
    except (RecoveryError, ValueError, TypeError, OSError) as exc:
        _handle_cli_error(exc)
        return

    words = public.encode()
    if ctx.obj.get("json_output"):
        _emit_json({
            "proof": "0x" + proof.hex(),
            "public_inputs": ["0x" + word.hex() for word in words],
        })
        return

    console.print(Panel(
        f"[green]0x{proof.hex()}[/]",
        title="[yellow]Development Proof (not zero-knowledge)",
        border_style="yellow",
    ))
    console.print(_public_inputs_table("Public Inputs", words))


@cli.command("verify")
@click.option("--proof", "proof_hex", required=True, help="Proof as 0x-hex")
@click.option(
    "--public-input", "-i",
    multiple=True,
    required=True,
    help="Public input word as 0x-hex, in verifier order (repeat 4 times)",
)
@click.option(
    "--proving-key",
    help="Verify with the development verifier using this key instead of the configured backend",
)
@click.pass_context
def verify_cmd(ctx: click.Context, proof_hex: str, public_input: tuple[str, ...], proving_key: Optional[str]):
    """
    Verify a proof against its public inputs.

    Uses the configured backend (ZKR_PROOF_BACKEND) unless --proving-key is given.
    """
    try:
        proof = bytes.fromhex(proof_hex[2:] if proof_hex.startswith("0x") else proof_hex)
        words = [bytes.fromhex(word[2:] if word.startswith("0x") else word) for word in public_input]
        validate_public_inputs(words)
        verifier = DevVerifier(proving_key) if proving_key else build_proof_verifier()
        valid = verifier.verify(proof, words)
    except (RecoveryError, ValueError) as exc:
        _handle_cli_error(exc)
        return

    if ctx.obj.get("json_output"):
        _emit_json({"valid": valid})
    elif valid:
        console.print("[bold green]Proof is valid[/]")
    else:
        console.print("[bold red]Proof is invalid[/]")

    if not valid:
        sys.exit(1)


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
