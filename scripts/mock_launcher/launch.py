#!/usr/bin/env python3
"""
Launch support for the Redfish mockup server.

This module provides the pieces the launcher is built from: the launch
profile, dependency provisioning, interpreter resolution and the process
invocation itself. Every subprocess call goes through an injectable runner so
the sequence can be exercised without touching the host environment.
"""

import logging
import os
import shutil
import socket
import subprocess
import sys
import time
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import requests
import yaml

SERVER_PORT = 1266
MOCKUP_DIR = "mockups/dell/"
CERT_FILE = "cert.pem"
KEY_FILE = "key.pem"
ENTRY_POINT = "redfishMockupServer.py"
REQUIREMENTS_FILE = "requirements.txt"
INTERPRETERS = ("python", "python3")

SERVICE_ROOT = "/redfish/v1"

EXIT_CONFIG_ERROR = 2
EXIT_COMMAND_NOT_FOUND = 127
EXIT_INTERRUPTED = 130

PYTHON = sys.executable or "python3"

logger = logging.getLogger(__name__)


class LaunchError(Exception):
    """Base class for launcher failures. Carries the exit status to use."""

    def __init__(self, message, returncode=1):
        super().__init__(message)
        self.returncode = returncode


class ConfigError(LaunchError):
    def __init__(self, message):
        super().__init__(message, returncode=EXIT_CONFIG_ERROR)


class ProvisioningError(LaunchError):
    pass


class InterpreterNotFound(LaunchError):
    def __init__(self, interpreter):
        super().__init__(
            f"{interpreter}: command not found",
            returncode=EXIT_COMMAND_NOT_FOUND,
        )
        self.interpreter = interpreter


@dataclass(frozen=True)
class LaunchConfig:
    """Fixed arguments handed to the mockup server."""
    port: int = SERVER_PORT
    mockup_dir: str = MOCKUP_DIR
    ssl: bool = True
    cert_file: str = CERT_FILE
    key_file: str = KEY_FILE
    entry_point: str = ENTRY_POINT
    requirements: str = REQUIREMENTS_FILE
    interpreters: Tuple[str, ...] = field(default=INTERPRETERS)
    workdir: str = "."


DEFAULT_CONFIG = LaunchConfig()


def server_args(config: LaunchConfig) -> List[str]:
    """Build the argument list that follows the interpreter."""
    args = [
        config.entry_point,
        "--port", str(config.port),
        "--dir", config.mockup_dir,
    ]
    if config.ssl:
        args.extend([
            "--ssl",
            "--cert", config.cert_file,
            "--key", config.key_file,
        ])
    return args


def base_url(config: LaunchConfig, host: str = "127.0.0.1") -> str:
    scheme = "https" if config.ssl else "http"
    return f"{scheme}://{host}:{config.port}"


def _check_port(value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Invalid port number: {value!r}")
    if not 0 < value < 65536:
        raise ConfigError(f"Port out of range: {value}")
    return value


def load_launch_config(config_file) -> LaunchConfig:
    """Load a launch profile from a YAML file.

    Args:
        config_file: Path to a YAML file. Values may sit at the top level or
            under a ``mock_server`` mapping.

    Returns:
        LaunchConfig: the built-in defaults overridden by the file's values
    """
    config_path = Path(config_file)
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {config_path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: expected a mapping at top level")
    data = data.get('mock_server', data)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: 'mock_server' must be a mapping")

    known = {f.name for f in fields(LaunchConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"{config_path}: unknown keys: {', '.join(unknown)}"
        )

    overrides = dict(data)
    if 'port' in overrides:
        overrides['port'] = _check_port(overrides['port'])
    if 'ssl' in overrides and not isinstance(overrides['ssl'], bool):
        raise ConfigError(f"{config_path}: 'ssl' must be true or false")
    if 'interpreters' in overrides:
        interpreters = overrides['interpreters']
        if isinstance(interpreters, str):
            interpreters = [interpreters]
        if not isinstance(interpreters, list) or \
                not all(isinstance(i, str) and i for i in interpreters):
            raise ConfigError(
                f"{config_path}: 'interpreters' must be a name or a list "
                f"of names"
            )
        if not interpreters:
            raise ConfigError(f"{config_path}: 'interpreters' is empty")
        overrides['interpreters'] = tuple(interpreters)
    for key in ('mockup_dir', 'cert_file', 'key_file', 'entry_point',
                'requirements', 'workdir'):
        if key in overrides and not isinstance(overrides[key], str):
            raise ConfigError(f"{config_path}: '{key}' must be a path")

    logger.debug(f"Loaded launch profile from {config_path}: {overrides}")
    return replace(DEFAULT_CONFIG, **overrides)


def step(msg):
    """Print a step message."""
    print(f"\n== {msg}", flush=True)


def ensure_dependencies(manifest, python=PYTHON, runner=subprocess.run,
                        cwd=None):
    """Install the packages listed in ``manifest`` into the active environment.

    Raises:
        ProvisioningError: the manifest is missing or pip exits non-zero
    """
    manifest_path = Path(cwd or ".") / manifest
    if not manifest_path.is_file():
        raise ProvisioningError(
            f"Dependency manifest not found: {manifest_path}"
        )

    cmd = [python, "-m", "pip", "install", "--requirement", str(manifest)]
    print(f"> {' '.join(cmd)}", flush=True)
    result = runner(cmd, cwd=cwd)
    if result.returncode != 0:
        raise ProvisioningError(
            f"Dependency installation failed with exit code "
            f"{result.returncode}",
            returncode=result.returncode,
        )


def resolve_executable(candidates: Sequence[str],
                       which: Callable = shutil.which) -> Optional[str]:
    """Return the path of the first candidate found on the search path."""
    for candidate in candidates:
        path = which(candidate)
        if path:
            logger.debug(f"Resolved {candidate} to {path}")
            return path
        logger.debug(f"{candidate} not found on PATH")
    return None


def resolve_interpreter(candidates: Sequence[str] = INTERPRETERS,
                        which: Callable = shutil.which) -> str:
    """Pick the interpreter that runs the mockup server.

    Only the preferred name is probed. When it does not resolve, the last
    candidate is returned as-is; a missing fallback surfaces at launch time.
    """
    if not candidates:
        raise ConfigError("No interpreter candidates configured")
    path = resolve_executable(candidates[:1], which=which)
    if path:
        return path
    fallback = candidates[-1]
    logger.debug(f"Falling back to {fallback}")
    return fallback


def server_command(config: LaunchConfig, interpreter: str) -> List[str]:
    return [interpreter] + server_args(config)


def launch_server(config: LaunchConfig, interpreter: str,
                  runner=subprocess.run) -> int:
    """Run the mockup server in the foreground and return its exit status."""
    if not Path(config.workdir).is_dir():
        raise ConfigError(f"Working directory not found: {config.workdir}")
    cmd = server_command(config, interpreter)
    print(f"> {' '.join(cmd)}", flush=True)
    try:
        result = runner(cmd, cwd=config.workdir)
    except FileNotFoundError:
        raise InterpreterNotFound(interpreter)
    return result.returncode


def exit_status(returncode: int) -> int:
    """Map a child's return code to a shell-style exit status."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def run_launcher(config: LaunchConfig = DEFAULT_CONFIG, install=True,
                 dry_run=False, runner=subprocess.run,
                 which: Callable = shutil.which, python=PYTHON) -> int:
    """Provision, resolve and launch, in that order.

    pip runs under ``python`` (this interpreter by default) while the server
    runs under whatever ``resolve_interpreter`` picks from PATH. Outside an
    activated environment the two can differ, and the server then starts
    without the installed packages; ``PrereqInterpreter`` reports that case.

    Returns:
        int: exit status of the mockup server (or 0 for a dry run)

    Raises:
        ProvisioningError: dependency installation failed; nothing else ran
        InterpreterNotFound: the chosen interpreter could not be executed
    """
    if install:
        step(f"Installing dependencies from {config.requirements}")
        ensure_dependencies(config.requirements, python=python,
                            runner=runner, cwd=config.workdir)
    else:
        print("Skipping dependency installation")

    step("Resolving interpreter")
    interpreter = resolve_interpreter(config.interpreters, which=which)
    print(f"Using interpreter: {interpreter}")

    if dry_run:
        print(' '.join(server_command(config, interpreter)))
        return 0

    step(f"Starting Redfish mockup server on port {config.port}")
    return exit_status(launch_server(config, interpreter, runner=runner))


def wait_for_service_root(url, timeout_secs=30, session=None) -> bool:
    """Wait until the Redfish service root answers with a 2xx status.

    The mockup server presents a self-signed certificate, so TLS
    verification is turned off for the probe.
    """
    session = session or requests.Session()
    target = f"{url.rstrip('/')}{SERVICE_ROOT}"
    start = time.time()
    while True:
        try:
            response = session.get(target, timeout=2, verify=False)
            if 200 <= response.status_code < 300:
                return True
            logger.debug(
                f"Service root answered {response.status_code}"
            )
        except (requests.exceptions.ConnectionError,
                requests.exceptions.Timeout) as e:
            logger.debug(f"Service root not reachable: {e}")
        if time.time() - start >= timeout_secs:
            return False
        time.sleep(0.5)


def port_in_use(port, host="127.0.0.1") -> bool:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, port))
    except OSError:
        return True
    return False


def resolve_path(config: LaunchConfig, relative) -> Path:
    """Resolve a profile path against the launch working directory."""
    return Path(os.path.join(config.workdir, relative))
