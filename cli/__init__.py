"""
Command line tools: tonetrx-transmit and tonetrx-receive.
"""

import logging
from typing import Optional

import click

from tonetrx import ProtocolConfig, PRESETS, get_preset

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


def load_config(profile: str, config_path: Optional[str]) -> ProtocolConfig:
    """A JSON config file wins over the named preset."""
    if config_path:
        return ProtocolConfig.from_file(config_path)
    return get_preset(profile)


profile_option = click.option(
    "-p", "--profile",
    type=click.Choice(sorted(PRESETS)),
    default="default",
    show_default=True,
    help="Named protocol preset",
)

config_option = click.option(
    "-c", "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Protocol config JSON file (overrides --profile)",
)


def render_payload(payload: bytes) -> str:
    """Printable text if the payload is UTF-8, hex otherwise."""
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        return payload.hex(" ")
    if text.isprintable():
        return text
    return repr(text)
