#!/usr/bin/env python3
"""
Report whether this machine can launch the Redfish mockup server.

Prints one status line per prerequisite and, for failures, how to fix them.
Exit status is 0 when every prerequisite passes and 1 otherwise.
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(__file__))

from mock_launcher.launch import DEFAULT_CONFIG, LaunchError, load_launch_config
from mock_launcher.prereq import PREREQ_MODES, check_prerequisites

RULE = "=" * 80


def print_status(prereq, status):
    print(f"  {prereq.name:<55} ... {status}", flush=True)


def print_remediation(failed):
    print("\n  REMEDIATION INSTRUCTIONS:")
    for n, prereq in enumerate(failed, start=1):
        print(f"\n   {n}. '{prereq.name}' failed")
        print(f"      Possible remediation: {prereq.remediation}")


def check_all_prereqs(prereq_list, config=DEFAULT_CONFIG) -> bool:
    """Print a status table for ``prereq_list``; True when all passed."""
    print(RULE)
    print("  REDFISH MOCKUP SERVER PREREQUISITES")
    print(RULE)

    passed, total, failed = check_prerequisites(
        prereq_list, config, report=print_status
    )

    print(RULE)
    print(f"  {passed}/{total} prerequisites passed")
    if failed:
        print_remediation(failed)
    print(RULE)
    return not failed


def build_parser():
    parser = argparse.ArgumentParser(
        description="Check Redfish mockup server prerequisites",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--mode", "-m",
        choices=sorted(PREREQ_MODES),
        default="launch",
        help="Which group of prerequisites to check",
    )
    parser.add_argument(
        "--config", "-c",
        help="YAML launch profile to check against",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Print only the failed prerequisites",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.ERROR, format='%(levelname)s: %(message)s')

    config = DEFAULT_CONFIG
    try:
        if args.config:
            config = load_launch_config(args.config)
    except LaunchError as e:
        logging.error(str(e))
        sys.exit(e.returncode)

    prereq_list = PREREQ_MODES[args.mode]

    if args.quiet:
        passed, total, failed = check_prerequisites(prereq_list, config)
        for prereq in failed:
            print(f"  - {prereq.name}")
        print(f"{args.mode}: {passed}/{total} prerequisites passed")
        sys.exit(1 if failed else 0)

    sys.exit(0 if check_all_prereqs(prereq_list, config) else 1)


if __name__ == "__main__":
    main()
