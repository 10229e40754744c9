#!/usr/bin/env python3
"""Example: Record a track to CSV with pandas.

Collects TPV reports for a fixed time and writes the fixes, and the
satellite history if requested, with the DataFrame export helpers.

Requires pandas:
    pip install gpsd-stream[export]

Usage:
    python record_track.py --seconds 120 --output track.csv
    python record_track.py --output track.csv --satellites sats.csv
"""

import argparse
import sys
import time
from pathlib import Path

# Add parent directory for development
sys.path.insert(0, str(Path(__file__).parent.parent))

from gpsd_stream import GpsdSession
from gpsd_stream.export import satellites_to_dataframe, tpv_to_dataframe


def main() -> int:
    parser = argparse.ArgumentParser(description="Record gpsd fixes to CSV")
    parser.add_argument("--address", default="localhost:2947")
    parser.add_argument("--seconds", type=float, default=60.0)
    parser.add_argument("--output", type=Path, required=True)
    parser.add_argument("--satellites", type=Path, help="Also write SKY satellites here")
    args = parser.parse_args()

    fixes = []
    skies = []

    with GpsdSession.dial(args.address) as session:
        # list.append is cheap enough to run on the read loop thread
        session.subscribe("TPV", fixes.append)
        if args.satellites:
            session.subscribe("SKY", skies.append)
        session.start()
        time.sleep(args.seconds)

    track = tpv_to_dataframe(fixes)
    track = track[track["mode"] >= 2]
    track.to_csv(args.output, index=False)
    print(f"Wrote {len(track)} fixes to {args.output}")

    if args.satellites:
        sats = satellites_to_dataframe(skies)
        sats.to_csv(args.satellites, index=False)
        print(f"Wrote {len(sats)} satellite rows to {args.satellites}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
