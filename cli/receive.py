#!/usr/bin/env python3
"""
tonetrx receiver CLI - decode frames from a file or live audio input.
"""

import queue
import sys

import click

from cli import config_option, load_config, profile_option, render_payload, setup_logging
from tonetrx import Decoder, FrameDecoded, TonetrxError, decode_file
from tonetrx.audio import Listener, list_input_devices


def report(event, sample_rate: int, output) -> bool:
    """Print one event; returns True for a decoded frame."""
    if isinstance(event, FrameDecoded):
        click.echo(
            f"[{event.start / sample_rate:7.2f}s] {len(event.payload)} bytes: "
            f"{render_payload(event.payload)}"
        )
        if output is not None:
            output.write(event.payload)
        return True

    click.echo(
        f"[{event.position / sample_rate:7.2f}s] frame failed: "
        f"{event.reason.value} ({event.detail})",
        err=True,
    )
    return False


@click.command()
@click.option(
    "-i", "--input",
    type=click.Path(exists=True, dir_okay=False),
    help="Decode from file instead of live audio",
)
@click.option(
    "-d", "--device",
    type=int,
    help="Audio input device number (default: system default)",
)
@profile_option
@config_option
@click.option(
    "-o", "--output",
    type=click.File("wb"),
    help="Append decoded payload bytes to this file",
)
@click.option(
    "--once",
    is_flag=True,
    help="Stop after the first decoded frame",
)
@click.option(
    "--bandpass",
    is_flag=True,
    help="Band-limit input to the profile's frequency band",
)
@click.option(
    "--max-search",
    type=float,
    default=10.0,
    help="Restart the start-marker search after this many seconds (default: 10)",
)
@click.option(
    "--max-frame",
    type=float,
    help="Give up on a frame this many seconds after its start marker",
)
@click.option(
    "-l", "--list-devices",
    is_flag=True,
    help="List available audio input devices",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output with statistics",
)
def main(
    input, device, profile, config_path, output, once, bandpass,
    max_search, max_frame, list_devices, verbose,
):
    """
    Receive MFSK frames from audio input or a file.

    Examples:

        tonetrx-receive                     # Listen on default input

        tonetrx-receive -d 2 --once         # Device 2, exit after one frame

        tonetrx-receive -i hello.wav        # Decode from file

        tonetrx-receive --list-devices      # Show audio devices
    """
    setup_logging(verbose)

    if list_devices:
        click.echo("Audio Input Devices:")
        click.echo("-" * 60)
        for i, name in list_input_devices():
            click.echo(f"  [{i}] {name}")
        return

    try:
        config = load_config(profile, config_path)
    except (TonetrxError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    decoder_kwargs = dict(
        max_search_duration=max_search,
        max_frame_duration=max_frame,
        bandpass=bandpass,
    )

    # File decoding mode
    if input:
        click.echo(f"Decoding from file: {input}")
        click.echo("-" * 40)

        try:
            events = decode_file(input, config, **decoder_kwargs)
        except (TonetrxError, OSError, RuntimeError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        decoded = 0
        for event in events:
            if report(event, config.sample_rate, output):
                decoded += 1
                if once:
                    break

        if not decoded:
            click.echo("No frames decoded.", err=True)
            sys.exit(1)
        return

    # Live decoding mode
    decoder = Decoder(config, **decoder_kwargs)
    listener = Listener(decoder, device=device)

    click.echo("Listening for frames...")
    if device is not None:
        click.echo(f"Using device {device}")
    click.echo("Press Ctrl+C to stop.")
    click.echo("-" * 40)

    try:
        listener.start()
        while True:
            try:
                event = listener.events.get(timeout=0.1)
            except queue.Empty:
                continue
            if report(event, config.sample_rate, output) and once:
                break
    except KeyboardInterrupt:
        click.echo("\n\nStopped.")
    except (TonetrxError, OSError, RuntimeError) as e:
        click.echo(f"\nError: {e}", err=True)
        sys.exit(1)
    finally:
        listener.stop()
        if verbose:
            click.echo(f"Stats: {decoder.get_statistics()}")


if __name__ == "__main__":
    main()
