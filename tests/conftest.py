# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""Pytest configuration."""

import pytest


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--device",
        action="store",
        default=None,
        help="Serial port of a DPS device (e.g., /dev/ttyUSB0)",
    )
    parser.addoption(
        "--baudrate",
        action="store",
        type=int,
        default=115200,
        help="Baud rate of the device",
    )


@pytest.fixture(scope="session")
def device_port(request):
    """Get the device port from command line."""
    return request.config.getoption("--device")


@pytest.fixture
def device(device_port, request):
    """
    Open the device given with --device.

    Tests using this fixture are skipped when no device is given.
    """
    from opendps_protocol import Device

    if device_port is None:
        pytest.skip("No device given (use --device PORT)")

    dps = Device.open(device_port, request.config.getoption("--baudrate"))
    yield dps
    dps.close()
