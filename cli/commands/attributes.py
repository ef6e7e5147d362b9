#!/usr/bin/env python3
"""
Attribute Commands for the nftmeta CLI

Inscribe, write, read and compose token attributes.
"""

from typing import Optional, Tuple

import click

from nftmeta.schema import normalize_key

from ..context import (
    CLIContext, handle_cli_error, parse_ref, parse_value, pass_context, render_value
)


@click.command('inscribe')
@click.argument('token')
@click.argument('key')
@click.option('--caller', required=True, help='Writer identity performing the inscription')
@click.option('--value', 'text', help='UTF-8 value to store')
@click.option('--hex', 'hex_value', help='Hex-encoded value to store')
@pass_context
@handle_cli_error
def inscribe(ctx: CLIContext, token: str, key: str, caller: str,
             text: Optional[str], hex_value: Optional[str]):
    """
    Inscribe KEY on TOKEN (collection:token_id) as a writer.

    Examples:
        nftmeta inscribe 0xabc:1 <64-hex-key> --caller writer --value "origin=studio"
    """
    ref = parse_ref(token)
    value = parse_value(text, hex_value)
    ctx.get_manager().inscribe(caller, ref.collection, ref.token_id, normalize_key(key), value)
    ctx.output({'token': str(ref), 'key': key, 'status': 'inscribed', 'length': len(value)})


@click.command('write')
@click.argument('token')
@click.argument('key')
@click.option('--caller', required=True, help='Writer identity submitting the write')
@click.option('--requester', required=True, help='Token owner requesting the write')
@click.option('--value', 'text', help='UTF-8 value to store')
@click.option('--hex', 'hex_value', help='Hex-encoded value to store')
@click.option('--now', type=int, help='Override the current Unix time')
@pass_context
@handle_cli_error
def write(ctx: CLIContext, token: str, key: str, caller: str, requester: str,
          text: Optional[str], hex_value: Optional[str], now: Optional[int]):
    """Write KEY on TOKEN on behalf of its owner."""
    ref = parse_ref(token)
    value = parse_value(text, hex_value)
    ctx.get_manager().safe_write(caller, requester, ref.collection, ref.token_id,
                                 normalize_key(key), value, now=now)
    ctx.output({'token': str(ref), 'key': key, 'status': 'written', 'length': len(value)})


@click.command('read')
@click.argument('token')
@click.argument('key')
@click.option('--now', type=int, help='Override the current Unix time')
@pass_context
@handle_cli_error
def read(ctx: CLIContext, token: str, key: str, now: Optional[int]):
    """Read KEY from TOKEN; derived tokens read their underlying token."""
    ref = parse_ref(token)
    value = ctx.get_manager().read(ref.collection, ref.token_id, normalize_key(key), now=now)
    ctx.output({'token': str(ref), 'key': key, **render_value(value)})


@click.command('compose')
@click.argument('source')
@click.argument('destination')
@click.argument('keys', nargs=-1, required=True)
@click.option('--caller', required=True, help='Owner of both tokens')
@pass_context
@handle_cli_error
def compose(ctx: CLIContext, source: str, destination: str, keys: Tuple[str, ...], caller: str):
    """Move KEYS from SOURCE to DESTINATION, clearing them on SOURCE."""
    src, dest = parse_ref(source), parse_ref(destination)
    normalized = [normalize_key(k) for k in keys]
    ctx.get_manager().compose(caller, src, dest, normalized)
    ctx.output({'source': str(src), 'destination': str(dest), 'moved_keys': len(set(normalized))})
