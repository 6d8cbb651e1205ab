#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
Control tool for OpenDPS power supplies over the serial port.

Usage:
    python dpsctl.py --port /dev/ttyUSB0 ping
    python dpsctl.py --port /dev/ttyUSB0 voltage 5000
    python dpsctl.py --port /dev/ttyUSB0 power on
    python dpsctl.py --port /dev/ttyUSB0 query
    python dpsctl.py --port /dev/ttyUSB0 upgrade opendps.bin

Requirements:
    pip install pyserial
"""

import argparse
import logging
import sys
from pathlib import Path

try:
    import serial  # noqa: F401
except ImportError:
    print("Error: pyserial not installed. Run: pip install pyserial")
    sys.exit(1)

from opendps_protocol import Device, Screen, crc16
from opendps_protocol.errors import DPSError, UpgradeError


def cmd_ping(dps: Device):
    """Ping the device."""
    dps.ping()
    print("Ping... OK")


def cmd_lock(dps: Device, locked: bool):
    """Lock or unlock the front panel."""
    dps.set_lock(locked)
    print(f"DPS {'locked' if locked else 'unlocked'}")


def cmd_brightness(dps: Device, brightness: int):
    """Set display brightness."""
    dps.set_brightness(brightness)
    print(f"Brightness set to {brightness}")


def cmd_power(dps: Device, enabled: bool):
    """Switch the output on or off."""
    dps.set_output(enabled)
    print(f"Power output {'ON' if enabled else 'OFF'}")


def cmd_voltage(dps: Device, millivolts: int):
    """Set output voltage."""
    dps.set_voltage_mv(millivolts)
    print(f"Voltage set to: {millivolts} mV")


def cmd_current(dps: Device, milliamps: int):
    """Set current limit."""
    dps.set_current_ma(milliamps)
    print(f"Current set to: {milliamps} mA")


def cmd_query(dps: Device):
    """Print device status."""
    status = dps.query()

    print("Status")
    print(f"Input voltage : {status.v_in / 1000:.2f}")
    print(f"Output voltage: {status.v_out / 1000:.2f}")
    print(f"Output current: {status.i_out / 1000:.3f}")
    print(f"Output        : {status.output_state}")
    if status.temp1 is not None:
        print(f"Temperature 1 : {status.temp1:.1f}")
    if status.temp2 is not None:
        print(f"Temperature 2 : {status.temp2:.1f}")


def cmd_screen(dps: Device, screen: Screen):
    """Change the displayed screen."""
    dps.change_screen(screen)
    print(f"Screen changed to {screen.name.lower()}")


def cmd_version(dps: Device):
    """Print bootloader and firmware versions."""
    version = dps.get_version()

    print(f"Bootloader version: {version.bootloader}")
    print(f"Firmware version  : {version.firmware}")


def cmd_upgrade(dps: Device, firmware_path: Path) -> bool:
    """Upload new firmware."""
    firmware = firmware_path.read_bytes()
    print(f"Firmware: {firmware_path} ({len(firmware)} bytes, CRC: 0x{crc16(firmware):04x})")

    def progress(percent: int):
        print(f"\rUpgrading: {percent:3d}%", end="", flush=True)

    try:
        dps.upgrade(firmware, progress_callback=progress)
    except UpgradeError as e:
        print(f"\nFAILED: {e}")
        return False

    print("\rUpgrading: 100% - Complete!")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Control tool for OpenDPS power supplies"
    )
    parser.add_argument(
        "--port", "-d",
        default="/dev/ttyUSB0",
        help="Serial port (default /dev/ttyUSB0)"
    )
    parser.add_argument(
        "--baudrate", "-b",
        type=int,
        default=115200,
        help="Baud rate (default 115200)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log frames sent and received"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("ping", help="Check that the device answers")
    subparsers.add_parser("lock", help="Lock the front panel")
    subparsers.add_parser("unlock", help="Unlock the front panel")

    brightness_parser = subparsers.add_parser("brightness", help="Set display brightness")
    brightness_parser.add_argument("value", type=int, help="Brightness (0-100)")

    power_parser = subparsers.add_parser("power", help="Switch output on or off")
    power_parser.add_argument("state", choices=["on", "off"])

    voltage_parser = subparsers.add_parser("voltage", help="Set output voltage")
    voltage_parser.add_argument("millivolts", type=int, help="Voltage in mV")

    current_parser = subparsers.add_parser("current", help="Set current limit")
    current_parser.add_argument("milliamps", type=int, help="Current in mA")

    subparsers.add_parser("query", help="Show device status")

    screen_parser = subparsers.add_parser("screen", help="Change displayed screen")
    screen_parser.add_argument("screen", choices=["main", "settings"])

    subparsers.add_parser("version", help="Show bootloader and firmware versions")

    upgrade_parser = subparsers.add_parser("upgrade", help="Upload new firmware")
    upgrade_parser.add_argument("file", type=Path, help="Firmware binary file")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if args.command == "upgrade" and not args.file.exists():
        print(f"Error: File not found: {args.file}")
        sys.exit(1)

    try:
        dps = Device.open(args.port, args.baudrate)
    except DPSError as e:
        print(f"Error: {e}")
        sys.exit(1)

    ok = True
    try:
        if args.command == "ping":
            cmd_ping(dps)
        elif args.command in ("lock", "unlock"):
            cmd_lock(dps, args.command == "lock")
        elif args.command == "brightness":
            cmd_brightness(dps, args.value)
        elif args.command == "power":
            cmd_power(dps, args.state == "on")
        elif args.command == "voltage":
            cmd_voltage(dps, args.millivolts)
        elif args.command == "current":
            cmd_current(dps, args.milliamps)
        elif args.command == "query":
            cmd_query(dps)
        elif args.command == "screen":
            cmd_screen(dps, Screen[args.screen.upper()])
        elif args.command == "version":
            cmd_version(dps)
        elif args.command == "upgrade":
            ok = cmd_upgrade(dps, args.file)
    except (DPSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        dps.close()

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
