#!/usr/bin/env python3
"""
tonetrx transmitter CLI - send data as tones.
"""

import sys

import click
import numpy as np

from cli import config_option, load_config, profile_option, setup_logging
from tonetrx import AMPLITUDE, Encoder, TonetrxError
from tonetrx.audio import play


@click.command()
@click.argument("data", required=False)
@click.option(
    "-f", "--file", "input_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Send the contents of a file instead of DATA",
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False),
    help="Write a WAV file instead of playing",
)
@profile_option
@config_option
@click.option(
    "-a", "--amplitude",
    type=float,
    default=AMPLITUDE,
    help=f"Amplitude 0.0-1.0 (default: {AMPLITUDE})",
)
@click.option(
    "-d", "--device",
    type=int,
    help="Audio output device number (default: system default)",
)
@click.option(
    "--lead-in",
    type=float,
    default=0.0,
    help="Silence before and after the frame, in seconds",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
def main(
    data, input_file, output, profile, config_path, amplitude, device, lead_in, verbose
):
    """
    Transmit DATA (UTF-8 text) or a file as an MFSK tone burst.

    Examples:

        tonetrx-transmit "hello" -o hello.wav

        tonetrx-transmit -f message.bin -p dense

        tonetrx-transmit "ping" --lead-in 0.5
    """
    setup_logging(verbose)

    if (data is None) == (input_file is None):
        raise click.UsageError("give either DATA or --file")

    try:
        if input_file:
            with open(input_file, "rb") as f:
                payload = f.read()
        else:
            payload = data.encode("utf-8")

        config = load_config(profile, config_path)
        encoder = Encoder(config, amplitude=amplitude)

        if verbose:
            click.echo(config.describe())
            click.echo(f"Payload: {len(payload)} bytes, {config.frame_duration(len(payload)):.2f}s on air")

        if output:
            encoder.encode_to_file(output, payload, lead_in=lead_in)
            click.echo(f"✓ Generated {output}")
            return

        samples = encoder.encode(payload)
        if lead_in > 0:
            pad = np.zeros(int(round(lead_in * config.sample_rate)), dtype=np.float32)
            samples = np.concatenate([pad, samples, pad])
        play(samples, config.sample_rate, device=device)
        click.echo(f"✓ Sent {len(payload)} bytes")
    except (TonetrxError, ValueError, OSError, RuntimeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
