# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI helpers around the configured cipher."""

from __future__ import annotations

from typing import Annotated

import typer

app = typer.Typer()


def _cipher():
    from vigil.core.config import get_settings
    from vigil.core.exceptions import ConfigurationError
    from vigil.crypto.cipher import CipherService

    try:
        return CipherService.from_settings(get_settings())
    except ConfigurationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


@app.command()
def encrypt(value: Annotated[str, typer.Argument(help="Plaintext to encrypt")]) -> None:
    """Encrypt a value into a portable token."""
    typer.echo(_cipher().encrypt(value))


@app.command()
def decrypt(token: Annotated[str, typer.Argument(help="Token produced by 'encrypt'")]) -> None:
    """Decrypt a token produced with the configured secret."""
    from vigil.core.exceptions import CipherError

    try:
        typer.echo(_cipher().decrypt(token))
    except CipherError as exc:
        typer.echo(f"Decryption failed: {exc}", err=True)
        raise typer.Exit(1) from exc


@app.command(name="hash")
def hash_value(
    value: Annotated[str, typer.Argument(help="Secret to hash")],
    verify: Annotated[
        str | None,
        typer.Option("--verify", help="Check VALUE against this salted digest instead"),
    ] = None,
) -> None:
    """Produce (or verify) a salted one-way hash."""
    cipher = _cipher()
    if verify is None:
        typer.echo(cipher.hash(value))
        return
    if cipher.verify_hash(value, verify):
        typer.echo("match")
        return
    typer.echo("no match", err=True)
    raise typer.Exit(1)


@app.command()
def token(
    length: Annotated[int, typer.Option("--bytes", "-b", help="Random bytes")] = 32,
) -> None:
    """Print a URL-safe random token."""
    from vigil.crypto.cipher import CipherService

    typer.echo(CipherService.random_token(length))
