#!/usr/bin/env python3
"""
topgun - manual lane bring-up

  python -m topgun.main up <manifest> [-o ops.yml] [-v key=value] ...
  python -m topgun.main down

``up`` deploys, prints the discovered topology and keeps the lane alive
until interrupted, then tears it down. ``down`` tears a lane down.
"""

import argparse
import sys
import time

from .config import HarnessConfig
from .diagnostic_logger import configure_logging
from .errors import HarnessError
from .harness import Harness


def print_topology(harness: Harness):
    registry = harness.ctx.registry
    print(f"\nDeployment: {harness.ctx.deployment_name}")
    print(f"ATC: {harness.atc_external_url or '-'}")
    for group in registry.groups():
        for instance in registry.instances(group):
            print(f"  {instance.name:<40} {instance.address}")
    print(f"Jobs: {', '.join(sorted(registry.jobs())) or '-'}")


def print_report(report):
    print(f"\n{'='*60}")
    print("Teardown")
    print(f"{'='*60}")
    for step in report.steps:
        status = "skipped" if step.skipped and step.ok else ("ok" if step.ok else "FAILED")
        print(f"  {step.name:<22} {status}")
        for error in step.errors:
            print(f"    ! {error}")


def up(harness: Harness, manifest: str, overrides) -> int:
    try:
        harness.setup()
        harness.deploy(manifest, *overrides)
        print_topology(harness)
        print("\nLane is up. Press Ctrl-C to tear it down.")
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    except HarnessError as e:
        print(f"\nSetup failed: {e}", file=sys.stderr)
        print_report(harness.teardown())
        return 1

    report = harness.teardown()
    print_report(report)
    return 0 if report.ok else 1


def down(harness: Harness) -> int:
    report = harness.teardown()
    print_report(report)
    return 0 if report.ok else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="topgun", description="Bring a topgun lane up or down")
    parser.add_argument("--lane", type=int, default=None, help="lane number (default: from PYTEST_XDIST_WORKER or 1)")
    commands = parser.add_subparsers(dest="command", required=True)

    up_parser = commands.add_parser("up", help="deploy a manifest and hold the lane")
    up_parser.add_argument("manifest")
    up_parser.add_argument("overrides", nargs=argparse.REMAINDER, help="deploy tool arguments, e.g. -o ops.yml -v k=v")

    commands.add_parser("down", help="tear the lane down")

    args = parser.parse_args(argv)

    config = HarnessConfig.from_env()
    configure_logging(config.log_level, config.log_dir)
    harness = Harness.for_lane(config, lane=args.lane)

    print("=" * 60)
    print(f"  topgun lane {harness.ctx.lane} ({config.deploy_tool})")
    print("=" * 60)

    if args.command == "up":
        return up(harness, args.manifest, args.overrides)
    return down(harness)


if __name__ == "__main__":
    sys.exit(main())
