#!/usr/bin/env python3
"""
Derivation Commands for the nftmeta CLI

Derive and reclaim tokens and inspect their lifecycle state.
"""

from typing import Optional

import click

from ..context import CLIContext, handle_cli_error, parse_ref, pass_context


@click.command('derive')
@click.argument('token')
@click.option('--caller', required=True, help='Owner of the underlying token')
@click.option('--start', 'start_time', type=int, required=True, help='Window start (Unix time)')
@click.option('--end', 'end_time', type=int, required=True, help='Window end (Unix time)')
@click.option('--royalty-bps', type=int, default=0, show_default=True,
              help='Royalty rate in basis points')
@pass_context
@handle_cli_error
def derive(ctx: CLIContext, token: str, caller: str, start_time: int, end_time: int,
           royalty_bps: int):
    """
    Lease TOKEN out as a new time-bounded derived token.

    Examples:
        nftmeta derive 0xabc:1 --caller alice --start 1700000000 --end 1700086400 --royalty-bps 500
    """
    ref = parse_ref(token)
    manager = ctx.get_manager()
    manager.derive(caller, ref.collection, ref.token_id, start_time, end_time, royalty_bps)
    derived = manager.derived_of(ref.collection, ref.token_id)
    ctx.output({
        'underlying': str(ref),
        'derived': str(derived.derived_ref),
        'account': manager.derived_account_of(derived.derived_ref.token_id),
        'start_time': derived.start_time,
        'end_time': derived.end_time,
        'royalty_bps': royalty_bps,
    })


@click.command('reclaim')
@click.argument('token')
@click.option('--caller', required=True, help='Owner of the underlying token')
@click.option('--now', type=int, help='Override the current Unix time')
@pass_context
@handle_cli_error
def reclaim(ctx: CLIContext, token: str, caller: str, now: Optional[int]):
    """Burn the derived token of TOKEN and make it derivable again."""
    ref = parse_ref(token)
    ctx.get_manager().reclaim(caller, ref.collection, ref.token_id, now=now)
    ctx.output({'underlying': str(ref), 'status': 'reclaimed'})


@click.command('derived-of')
@click.argument('token')
@pass_context
@handle_cli_error
def derived_of(ctx: CLIContext, token: str):
    """Show the active derivation of TOKEN."""
    ref = parse_ref(token)
    manager = ctx.get_manager()
    derived = manager.derived_of(ref.collection, ref.token_id)
    derived_id = derived.derived_ref.token_id if derived.exists else None
    ctx.output({
        'underlying': str(ref),
        'derived': str(derived.derived_ref) if derived.exists else None,
        'start_time': derived.start_time,
        'end_time': derived.end_time,
        'account': manager.derived_account_of(derived_id) if derived_id else None,
        'royalty_bps': manager.royalty_rate_of(derived_id) if derived_id else 0,
    })


@click.command('underlying-of')
@click.argument('derived_token_id', type=int)
@pass_context
@handle_cli_error
def underlying_of(ctx: CLIContext, derived_token_id: int):
    """Show the underlying token of DERIVED_TOKEN_ID."""
    underlying = ctx.get_manager().underlying_of(derived_token_id)
    ctx.output({
        'derived_token_id': derived_token_id,
        'underlying': str(underlying) if underlying else None,
    })


@click.command('status')
@click.argument('token')
@click.option('--requester', help='Also report whether REQUESTER may reclaim')
@click.option('--now', type=int, help='Override the current Unix time')
@pass_context
@handle_cli_error
def status(ctx: CLIContext, token: str, requester: Optional[str], now: Optional[int]):
    """Report usability, derivability and reclaimability of TOKEN."""
    ref = parse_ref(token)
    manager = ctx.get_manager()
    report = {
        'token': str(ref),
        'owner': manager.owner_of(ref.collection, ref.token_id),
        'usable': manager.is_usable(ref.collection, ref.token_id, now=now),
        'derivable': manager.is_derivable(ref.collection, ref.token_id),
    }
    if requester and manager.derived_of(ref.collection, ref.token_id).exists:
        report['reclaimable'] = manager.is_reclaimable(requester, ref.collection,
                                                       ref.token_id, now=now)
    ctx.output(report)
