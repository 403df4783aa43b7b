"""CLI for hrvlab: record and analyze HRV sessions from BLE heart rate sensors."""

import asyncio
import json
import math
from datetime import timedelta

import click

from hrvlab.config import configure_logging


@click.group()
@click.option("--log-level", default="WARNING", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Logging verbosity.")
def main(log_level: str) -> None:
    """hrvlab — heart rate variability from BLE chest straps."""
    configure_logging(log_level)


@main.command()
@click.option("--timeout", "-t", default=None, type=float, help="Scan timeout in seconds.")
def scan(timeout: float | None) -> None:
    """Scan for nearby heart rate sensors."""
    from hrvlab.scanner import scan as do_scan

    asyncio.run(do_scan(timeout))


@main.command()
@click.option("--address", "-a", default=None, help="BLE address to connect to.")
@click.option("--duration", "-d", default=None, type=float, help="Recording duration in seconds.")
@click.option("--output", "-o", default=None, help="Session JSON file path.")
@click.option("--window", "-w", default=None, type=float,
              help="Statistics window in seconds (default: whole session).")
@click.option("--outlier-filter", "-f", default=None, type=float,
              help="Moving-MAD outlier threshold.")
def record(
    address: str | None,
    duration: float | None,
    output: str | None,
    window: float | None,
    outlier_filter: float | None,
) -> None:
    """Record a live session and save it as JSON."""
    from hrvlab.heart_rate import stream_heart_rate
    from hrvlab.measurement import MeasurementAggregate, MeasurementHandle
    from hrvlab.storage import default_session_path, save_session

    if outlier_filter is not None and outlier_filter < 0:
        raise click.BadParameter("must be >= 0", param_hint="--outlier-filter")

    acq = MeasurementAggregate(
        window=timedelta(seconds=window) if window is not None else None,
        outlier_filter=outlier_filter,
    )

    async def _record() -> None:
        handle = MeasurementHandle(acq)
        await stream_heart_rate(handle, address, duration)

    try:
        asyncio.run(_record())
    except KeyboardInterrupt:
        click.echo("\nStopped.")

    if not acq.messages:
        click.echo("No data recorded; nothing saved.")
        return
    path = save_session(acq, output or default_session_path(acq.start_time))
    click.echo(f"Session written to {path}")


def _fmt(value: float | None, unit: str = "ms") -> str:
    if value is None or not math.isfinite(value):
        return "n/a"
    return f"{value:.1f} {unit}"


@main.command("analyze")
@click.argument("file", type=click.Path(exists=True))
@click.option("--window", "-w", default=None, type=float,
              help="Override the statistics window in seconds.")
@click.option("--outlier-filter", "-f", default=None, type=float,
              help="Override the Moving-MAD outlier threshold.")
@click.option("--json", "as_json", is_flag=True, help="Print the metrics as JSON.")
def analyze_cmd(file: str, window: float | None, outlier_filter: float | None, as_json: bool) -> None:
    """Rebuild and summarize the HRV metrics of a saved session."""
    from hrvlab.storage import load_session

    acq = load_session(file)
    if window is not None:
        acq.set_stats_window(timedelta(seconds=window))
    if outlier_filter is not None:
        try:
            acq.set_outlier_filter_value(outlier_filter)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--outlier-filter")

    stats = acq.hrv_stats
    session = acq.session

    if as_json:
        click.echo(json.dumps({
            "start_time": acq.start_time.isoformat(),
            "messages": len(acq.messages),
            "state": session.state.value,
            "statistics": stats.to_dict() if stats is not None else None,
            "rmssd_ts": acq.rmssd_ts,
            "sdrr_ts": acq.sdrr_ts,
            "sd1_ts": acq.sd1_ts,
            "sd2_ts": acq.sd2_ts,
            "hr_ts": acq.hr_ts,
            "dfa_alpha_ts": acq.dfa_alpha_ts,
        }, indent=2))
        return

    inliers, outliers = acq.poincare_points()
    click.echo(f"\n{'=' * 60}")
    click.echo(f"  Session: {acq.start_time.isoformat()}")
    click.echo(f"{'=' * 60}")
    click.echo(f"  Messages:   {len(acq.messages)} ({acq.elapsed_time.total_seconds():.0f} s)")
    click.echo(f"  RR:         {len(session.raw_rr_intervals)} raw, "
               f"{len(session.rr_intervals)} filtered")
    click.echo(f"  Poincaré:   {len(inliers)} inlier / {len(outliers)} outlier pairs")
    if stats is None:
        click.echo("  Not enough RR intervals for HRV statistics.")
    else:
        click.echo(f"  RMSSD:      {_fmt(stats.rmssd)}")
        click.echo(f"  SDRR:       {_fmt(stats.sdrr)}")
        click.echo(f"  SD1 / SD2:  {_fmt(stats.sd1)} / {_fmt(stats.sd2)} "
                   f"(ratio {_fmt(stats.sd1_sd2_ratio, '')})")
        click.echo(f"  Avg HR:     {_fmt(stats.avg_hr, 'bpm')}")
    click.echo(f"  Trend:      {len(acq.rmssd_ts)} points, latest RMSSD {_fmt(acq.rmssd)}")
    click.echo(f"  DFA a1:     {_fmt(acq.dfa_alpha, '')}")
    click.echo(f"{'=' * 60}")


@main.command("decode")
@click.argument("hex_payloads", nargs=-1, required=True)
def decode_cmd(hex_payloads: tuple[str, ...]) -> None:
    """Decode raw Heart Rate Measurement payloads given as hex."""
    from hrvlab.decoders.hrs import FormatError, HeartRateMessageCodec

    for hex_payload in hex_payloads:
        try:
            sample = HeartRateMessageCodec.decode(bytes.fromhex(hex_payload))
        except (FormatError, ValueError) as e:
            click.echo(f"{hex_payload}: {e}", err=True)
            continue
        click.echo(sample.describe())


if __name__ == "__main__":
    main()
