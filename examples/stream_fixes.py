#!/usr/bin/env python3
"""Demo: Stream position fixes and sky views from gpsd.

This script subscribes to TPV and SKY reports, prints a line per
report and keeps a running summary of fix quality. Stop it with
Ctrl+C; the session counters are printed on exit.

Usage:
    # Local daemon
    python stream_fixes.py

    # Remote daemon, verbose logging of reconnects
    python stream_fixes.py --address gps-box:2947 -v
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

# Add parent directory to path for development
sys.path.insert(0, str(Path(__file__).parent.parent))

from gpsd_stream import (
    ConnectFailed,
    GpsdSession,
    Mode,
    SessionConfig,
    SKYReport,
    TPVReport,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Stream fixes from gpsd")
    parser.add_argument("--address", default="localhost:2947")
    parser.add_argument("--reconnect-delay", type=float, default=1.0)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        session = GpsdSession.dial(
            args.address, SessionConfig(reconnect_delay=args.reconnect_delay)
        )
    except ConnectFailed as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    fixes = {mode: 0 for mode in Mode}

    @session.on("TPV")
    def on_fix(report: TPVReport):
        fixes[report.mode] += 1
        if report.has_fix:
            ts = report.time.strftime("%H:%M:%S") if report.time else "--:--:--"
            print(
                f"{ts} {report.mode.name:<6} "
                f"{report.lat:11.6f} {report.lon:11.6f} "
                f"+/-{report.eph or max(report.epx, report.epy):.1f}m"
            )
        else:
            print(f"waiting for fix ({report.mode.name})")

    @session.on("SKY")
    def on_sky(report: SKYReport):
        print(
            f"  sky: {report.satellites_used}/{len(report.satellites)} used, "
            f"hdop {report.hdop:.2f}"
        )

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: stop.set())

    session.start()
    stop.wait()
    session.close()

    print("\nFix counts:")
    for mode, count in fixes.items():
        print(f"  {mode.name}: {count}")
    print(f"\n{session.metrics.to_prometheus_text()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
