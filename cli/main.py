#!/usr/bin/env python3
"""
NFT Metadata Registry - Command Line Interface

A CLI for inscribing and writing token attributes, deriving and reclaiming
time-bounded tokens, composing attributes across tokens, and administering
the locally persisted registry.
"""

import sys
from typing import Optional

import click

from . import __version__
from .config import OUTPUT_FORMATS, PROFILES
from .context import CLIContext, pass_context
from .commands.admin import check_config, ledger, roles, stats
from .commands.attributes import compose, inscribe, read, write
from .commands.derivation import derive, derived_of, reclaim, status, underlying_of


@click.group(invoke_without_command=True,
             context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-file', '-c',
              help='Path to configuration file (YAML or JSON)')
@click.option('--profile',
              type=click.Choice(sorted(PROFILES)),
              help='Configuration profile to apply')
@click.option('--output-format', '-o',
              type=click.Choice(OUTPUT_FORMATS),
              help='Output format')
@click.option('--state-dir',
              help='Directory holding the persisted registry state')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.option('--version',
              is_flag=True,
              help='Show version information')
@pass_context
def cli(ctx: CLIContext, config_file: Optional[str], profile: Optional[str],
        output_format: Optional[str], state_dir: Optional[str], verbose: int, version: bool):
    """
    NFT Metadata Registry Command Line Interface

    Tokens are addressed as COLLECTION:TOKEN_ID and attribute keys as
    64-character hex strings.

    Examples:
        nftmeta roles grant writer-1
        nftmeta ledger assign 0xabc:1 alice
        nftmeta inscribe 0xabc:1 <key> --caller writer-1 --value "tier=gold"
        nftmeta derive 0xabc:1 --caller alice --start 1700000000 --end 1700086400
    """
    if version:
        click.echo(f"nftmeta CLI v{__version__}")
        sys.exit(0)

    ctx.config_file = config_file
    ctx.profile = profile
    ctx.output_format = output_format
    ctx.state_dir = state_dir
    ctx.verbose = verbose

    ctx.setup_logging()

    try:
        ctx.load_config()
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Failed to load configuration: {e}")

    ctx.logger.debug("CLI initialized with context")

    click_ctx = click.get_current_context()
    if click_ctx.invoked_subcommand is None:
        click.echo(click_ctx.get_help())


def register_commands() -> None:
    """Register all command modules with the main CLI."""
    for command in (inscribe, write, read, compose,
                    derive, reclaim, derived_of, underlying_of, status,
                    roles, ledger, stats, check_config):
        cli.add_command(command)


register_commands()


def main() -> None:
    cli()


if __name__ == '__main__':
    main()
