#!/usr/bin/env python3
"""
Provision a device and optionally queue a command for it.

Usage:
    python scripts/seed_device.py <device_id> <token> [--disabled] [--command TYPE]

Prerequisites:
    - PostgreSQL running and `scripts/create_tables.py` already applied
"""

import argparse
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from repo_commands import CommandRepo
from repo_devices import DeviceRepo


def main(argv=None):
    parser = argparse.ArgumentParser(description="Provision a device for local testing.")
    parser.add_argument("device_id")
    parser.add_argument("token")
    parser.add_argument("--disabled", action="store_true", help="store the device as disabled")
    parser.add_argument("--command", help="queue a pending command of this type")
    args = parser.parse_args(argv)

    device = DeviceRepo().upsert(args.device_id, args.token, enabled=not args.disabled)
    print(f"Device {device.device_id} enabled={device.enabled}")

    if args.command:
        command = CommandRepo().enqueue(device.device_id, args.command, {"v": 1})
        print(f"Queued command {command.id} ({command.type})")


if __name__ == "__main__":
    main()
