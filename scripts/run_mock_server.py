#!/usr/bin/env python3
"""
Start the Redfish mockup server used by the client integration tests.

Installs the server's requirements, picks an interpreter and runs
redfishMockupServer.py on port 1266 with the Dell mockups over TLS.
The server's exit status becomes the exit status of this script.
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(__file__))

from mock_launcher.launch import (
    DEFAULT_CONFIG, EXIT_INTERRUPTED, LaunchError,
    load_launch_config, run_launcher
)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Start the Redfish mockup server (port 1266, TLS)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c",
        help="YAML launch profile overriding the built-in defaults",
    )
    parser.add_argument(
        "--skip-install",
        action="store_true",
        help="Do not install the requirements before launching",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the server command instead of running it",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.ERROR,
        format='%(levelname)s: %(message)s'
    )

    try:
        config = DEFAULT_CONFIG
        if args.config:
            config = load_launch_config(args.config)
        code = run_launcher(
            config,
            install=not args.skip_install,
            dry_run=args.dry_run,
        )
    except LaunchError as e:
        logging.error(str(e))
        sys.exit(e.returncode)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)

    sys.exit(code)


if __name__ == "__main__":
    main()
