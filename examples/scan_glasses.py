"""Scan for ActiveLook glasses and optionally greet the strongest one.

Usage:
    uv run python examples/scan_glasses.py --duration 10
    uv run python examples/scan_glasses.py --connect --text "Hello"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime

from activelook import (
    ActiveLookGlasses,
    DiscoveredGlasses,
    TextRotation,
    discover_glasses,
)


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _print_glasses(glasses: DiscoveredGlasses) -> None:
    print(
        f"[{_timestamp()}] {glasses.name} ({glasses.address}) "
        f"rssi={glasses.rssi} manId={glasses.manufacturer_id}"
    )


async def greet(discovered: DiscoveredGlasses, text: str) -> None:
    """Connect, print device details and show ``text`` on the display."""
    async with ActiveLookGlasses.from_discovered(discovered) as glasses:
        information = glasses.information
        session = glasses.session
        version = await session.vers()
        print(f"  hardware={information.hardware_version} firmware={version.firmware_version}")
        print(f"  serial={information.serial_number} battery={await session.battery()}%")
        print(f"  token={glasses.serialize().serialize().decode()}")

        session.clear()
        session.txt(200, 128, TextRotation.TOP_LR, 2, 15, text)
        await asyncio.sleep(3)
        session.clear()


async def scan(duration: float, connect: bool, text: str) -> None:
    print(f"Scanning for ActiveLook glasses for {duration:.1f}s...")
    found = await discover_glasses(timeout=duration)
    for glasses in found:
        _print_glasses(glasses)

    print(f"\nSummary: glasses_seen={len(found)}")
    if connect and found:
        print(f"\nConnecting to {found[0].name}...")
        await greet(found[0], text)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan for ActiveLook BLE smart glasses.")
    parser.add_argument(
        "--duration",
        type=float,
        default=5.0,
        help="Scan duration in seconds. Default: 5",
    )
    parser.add_argument(
        "--connect",
        action="store_true",
        help="Connect to the strongest glasses after the scan.",
    )
    parser.add_argument(
        "--text",
        default="Hello",
        help="Text displayed when connecting. Default: Hello",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    try:
        asyncio.run(scan(duration=args.duration, connect=args.connect, text=args.text))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
