#!/usr/bin/env python3
"""
Shared CLI context, error handling and argument helpers for nftmeta commands.
"""

import functools
import logging
import sys
import traceback
from typing import Any, Optional

import click

from nftmeta.events import RegistryEvent
from nftmeta.exceptions import RegistryError
from nftmeta.manager import RegistryManager
from nftmeta.schema import AssetRef

from .config import ConfigurationManager
from .output import OutputFormatter


class CLIContext:
    """Global CLI context for sharing state across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.profile: Optional[str] = None
        self.output_format: Optional[str] = None
        self.state_dir: Optional[str] = None
        self.verbose: int = 0
        self.config: Optional[ConfigurationManager] = None
        self.logger: logging.Logger = logging.getLogger('nftmeta-cli')
        self._manager: Optional[RegistryManager] = None

    def setup_logging(self) -> None:
        """Configure logging based on verbosity level."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }
        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)

        for name in ('nftmeta-cli', 'nftmeta'):
            logger = logging.getLogger(name)
            logger.handlers = [handler]
            logger.setLevel(level)

    def load_config(self) -> None:
        self.config = ConfigurationManager(self.config_file, self.profile)
        self.config.load()
        self.logger.debug(f"Configuration sources: {self.config.get_sources()}")
        if self.output_format is None:
            self.output_format = self.config.get('cli.output_format', 'table')

    def get_manager(self) -> RegistryManager:
        """Open the persisted registry described by the configuration."""
        if self._manager is None:
            if self.config is None:
                self.load_config()
            state_dir = self.state_dir or self.config.get('registry.state_dir')
            self._manager = RegistryManager(
                storage_dir=state_dir,
                config=self.config.registry_config(),
                compressed=bool(self.config.get('registry.compressed', False)),
                backup_count=int(self.config.get('registry.backup_count', 5))
            )
            self._manager.subscribe(self._log_event)
            self.logger.info(f"Opened registry at {state_dir}")
        return self._manager

    def _log_event(self, event: RegistryEvent) -> None:
        self.logger.info(f"Notification: {event.to_dict()}")

    def output(self, data: Any, format_override: Optional[str] = None) -> None:
        formatter = OutputFormatter(format_override or self.output_format or 'table')
        click.echo(formatter.format(data))


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def handle_cli_error(func):
    """Decorator to report CLI errors and exit non-zero."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo("\nOperation cancelled by user.", err=True)
            sys.exit(130)
        except (RegistryError, ValueError, OSError) as e:
            ctx = click.get_current_context().find_object(CLIContext)
            click.echo(f"Error: {type(e).__name__}: {e}", err=True)
            if ctx and ctx.verbose >= 2:
                click.echo(traceback.format_exc(), err=True)
            sys.exit(1)

    return wrapper


def parse_ref(value: str) -> AssetRef:
    """Parse a 'collection:token_id' command-line argument."""
    try:
        return AssetRef.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def parse_value(text: Optional[str], hex_value: Optional[str]) -> bytes:
    """Turn --value / --hex options into raw bytes."""
    if (text is None) == (hex_value is None):
        raise click.UsageError("Provide exactly one of --value or --hex")
    if hex_value is not None:
        cleaned = hex_value[2:] if hex_value.lower().startswith('0x') else hex_value
        try:
            return bytes.fromhex(cleaned)
        except ValueError:
            raise click.BadParameter(f"Invalid hex value: {hex_value}")
    return text.encode('utf-8')


def render_value(value: bytes) -> dict:
    """Show a stored value as hex and, when decodable, as UTF-8 text."""
    try:
        text = value.decode('utf-8')
    except UnicodeDecodeError:
        text = None
    return {'hex': value.hex(), 'text': text, 'length': len(value)}
