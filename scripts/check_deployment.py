#!/usr/bin/env python3
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

REQUIRED_FILES = [
    "pyproject.toml",
    "app.py",
    "trade_data.py",
    "landed_cost.py",
    "data/suppliers.json",
    "data/ports.json",
    "data/destination_ports.json",
    "data/tariffs.json",
]


def main():
    parser = argparse.ArgumentParser(description="Check that the deployment files are present.")
    parser.add_argument("--root", type=Path, default=ROOT)
    args = parser.parse_args()

    print("Checking deployment configuration...")
    for name in REQUIRED_FILES:
        if (args.root / name).exists():
            print(f"  found   {name}")
        else:
            print(f"  MISSING {name}")
            return 1
    print("All deployment files are present.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
