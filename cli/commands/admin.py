#!/usr/bin/env python3
"""
Administration Commands for the nftmeta CLI

Local writer-role and ownership-ledger administration, statistics and
configuration checks.
"""

import click

from ..context import CLIContext, handle_cli_error, parse_ref, pass_context


@click.group('roles')
@pass_context
def roles(ctx: CLIContext):
    """Manage the locally administered writer role set."""
    ctx.logger.debug("Roles command group invoked")


@roles.command('grant')
@click.argument('actor')
@pass_context
@handle_cli_error
def grant(ctx: CLIContext, actor: str):
    """Grant the writer role to ACTOR."""
    changed = ctx.get_manager().grant_writer(actor)
    ctx.output({'actor': actor, 'writer': True, 'changed': changed})


@roles.command('revoke')
@click.argument('actor')
@pass_context
@handle_cli_error
def revoke(ctx: CLIContext, actor: str):
    """Revoke the writer role from ACTOR."""
    changed = ctx.get_manager().revoke_writer(actor)
    ctx.output({'actor': actor, 'writer': False, 'changed': changed})


@roles.command('list')
@pass_context
@handle_cli_error
def list_writers(ctx: CLIContext):
    """List writer-role holders."""
    ctx.output([{'writer': actor} for actor in ctx.get_manager().writers()])


@click.group('ledger')
@pass_context
def ledger(ctx: CLIContext):
    """Maintain the local ownership ledger used for ownership checks."""
    ctx.logger.debug("Ledger command group invoked")


@ledger.command('assign')
@click.argument('token')
@click.argument('owner')
@pass_context
@handle_cli_error
def assign(ctx: CLIContext, token: str, owner: str):
    """Record OWNER as the owner of TOKEN."""
    ref = parse_ref(token)
    ctx.get_manager().assign_owner(ref.collection, ref.token_id, owner)
    ctx.output({'token': str(ref), 'owner': owner})


@ledger.command('owner')
@click.argument('token')
@pass_context
@handle_cli_error
def owner(ctx: CLIContext, token: str):
    """Show the recorded owner of TOKEN."""
    ref = parse_ref(token)
    ctx.output({'token': str(ref), 'owner': ctx.get_manager().owner_of(ref.collection, ref.token_id)})


@click.command('stats')
@pass_context
@handle_cli_error
def stats(ctx: CLIContext):
    """Show registry statistics."""
    ctx.output(ctx.get_manager().get_stats())


@click.command('check-config')
@pass_context
@handle_cli_error
def check_config(ctx: CLIContext):
    """Validate the active configuration."""
    errors = ctx.config.validate()
    if errors:
        for error in errors:
            click.echo(f"  - {error}", err=True)
        raise click.ClickException(f"{len(errors)} configuration error(s)")
    ctx.output({'valid': True, 'sources': ctx.config.get_sources()})
