#!/usr/bin/env python3
"""Demo: Watch satellite visibility with asyncio.

Iterates over SKY reports with ``AsyncGpsdSession.reports()`` and
prints the satellites that joined or left the navigation solution.

Usage:
    python async_sky.py
    python async_sky.py --address gps-box:2947 --seconds 60
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for development
sys.path.insert(0, str(Path(__file__).parent.parent))

from gpsd_stream import AsyncGpsdSession


async def watch_sky(address: str, seconds: float) -> None:
    used = set()

    async with AsyncGpsdSession(address, classes=("SKY",)) as gps:
        async def consume():
            nonlocal used
            async for report in gps.reports():
                now_used = {int(sat.prn) for sat in report.satellites if sat.used}
                for prn in sorted(now_used - used):
                    print(f"+ PRN {prn}")
                for prn in sorted(used - now_used):
                    print(f"- PRN {prn}")
                used = now_used

        try:
            await asyncio.wait_for(consume(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    print(f"{len(used)} satellites in use at exit: {sorted(used)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch satellites used by gpsd")
    parser.add_argument("--address", default="localhost:2947")
    parser.add_argument("--seconds", type=float, default=30.0)
    args = parser.parse_args()

    asyncio.run(watch_sky(args.address, args.seconds))


if __name__ == "__main__":
    main()
