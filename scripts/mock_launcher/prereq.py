#!/usr/bin/env python3
"""
Prerequisite checking module for the Redfish mockup server launcher.

This module provides classes to check what the mockup server needs before it
can start: an interpreter, pip, the requirements manifest, the mockup data,
the TLS material and a free port.
"""

import subprocess
import logging
import os
import shutil
import time

import requests

from mock_launcher.launch import (
    DEFAULT_CONFIG, PYTHON, SERVICE_ROOT,
    base_url, port_in_use, resolve_interpreter, resolve_path
)

PRECHECK_OK = "OK"
PRECHECK_WARNING = "WARNING"
PRECHECK_ERROR = "ERROR"


class Prereq:
    def __init__(self, config=DEFAULT_CONFIG):
        self.config = config
        self.name = ""
        self.remediation = ""

    def __str__(self):
        return self.name

    def check(self) -> str:
        return PRECHECK_OK


class PrereqPip(Prereq):
    def __init__(self, config=DEFAULT_CONFIG):
        super().__init__(config)
        self.name = "pip is available"
        self.remediation = (
            "Install pip with 'python3 -m ensurepip --upgrade' "
            "or your system package manager"
        )

    def check(self) -> str:
        try:
            subprocess.check_output(
                [PYTHON, "-m", "pip", "--version"], stderr=subprocess.DEVNULL
            )
            return PRECHECK_OK
        except subprocess.CalledProcessError:
            logging.error("pip is not installed or not working properly")
            logging.error(f"Possible remediation: {self.remediation}")
            return PRECHECK_ERROR
        except FileNotFoundError:
            logging.error(f"'{PYTHON}' command not found")
            logging.error(f"Possible remediation: {self.remediation}")
            return PRECHECK_ERROR


class PrereqInterpreter(Prereq):
    def __init__(self, config=DEFAULT_CONFIG, which=shutil.which,
                 python=PYTHON):
        super().__init__(config)
        self.which = which
        self.python = python
        names = "' or '".join(dict.fromkeys(
            (config.interpreters[0], config.interpreters[-1])))
        self.name = f"'{names}' is on PATH"
        self.remediation = (
            "Install Python 3 from https://python.org/ "
            "or using a package manager like Homebrew: "
            "'brew install python3'"
        )

    def check(self) -> str:
        preferred = self.config.interpreters[0]
        interpreter = resolve_interpreter(self.config.interpreters,
                                          which=self.which)
        status = PRECHECK_OK

        path = self.which(preferred)
        if not path:
            # Only the fallback name is left; the launcher runs it unprobed
            path = self.which(interpreter)
            if not path:
                logging.error(
                    f"Neither '{preferred}' nor '{interpreter}' "
                    f"found on PATH"
                )
                logging.error(f"Possible remediation: {self.remediation}")
                return PRECHECK_ERROR
            logging.warning(f"'{preferred}' not found, using {path}")
            status = PRECHECK_WARNING

        if os.path.realpath(path) != os.path.realpath(self.python):
            logging.warning(
                f"Dependencies install into {self.python} but the server "
                f"runs under {path}"
            )
            status = PRECHECK_WARNING
        return status


class PrereqRequirementsFile(Prereq):
    def __init__(self, config=DEFAULT_CONFIG):
        super().__init__(config)
        self.name = f"dependency manifest '{config.requirements}' exists"
        self.remediation = (
            f"Run the launcher from the directory that holds "
            f"{config.requirements}, or set 'workdir' in the launch profile"
        )

    def check(self) -> str:
        if resolve_path(self.config, self.config.requirements).is_file():
            return PRECHECK_OK
        logging.error(f"{self.config.requirements} not found")
        logging.error(f"Possible remediation: {self.remediation}")
        return PRECHECK_ERROR


class PrereqEntryPoint(Prereq):
    def __init__(self, config=DEFAULT_CONFIG):
        super().__init__(config)
        self.name = f"mockup server script '{config.entry_point}' exists"
        self.remediation = (
            "Download redfishMockupServer.py from "
            "https://github.com/DMTF/Redfish-Mockup-Server"
        )

    def check(self) -> str:
        if resolve_path(self.config, self.config.entry_point).is_file():
            return PRECHECK_OK
        logging.error(f"{self.config.entry_point} not found")
        logging.error(f"Possible remediation: {self.remediation}")
        return PRECHECK_ERROR


class PrereqMockupDir(Prereq):
    def __init__(self, config=DEFAULT_CONFIG):
        super().__init__(config)
        self.name = f"mockup directory '{config.mockup_dir}' exists"
        self.remediation = (
            "Check out the mockup data next to the launcher, "
            "e.g. under mockups/dell/"
        )

    def check(self) -> str:
        mockup_dir = resolve_path(self.config, self.config.mockup_dir)
        if not mockup_dir.is_dir():
            logging.error(f"{mockup_dir} is not a directory")
            logging.error(f"Possible remediation: {self.remediation}")
            return PRECHECK_ERROR
        # The server expects the tree rooted at redfish/v1
        if not (mockup_dir / "redfish" / "v1").is_dir():
            logging.warning(
                f"{mockup_dir} has no redfish/v1 tree; the server will "
                "answer 404 for the service root"
            )
            return PRECHECK_WARNING
        return PRECHECK_OK


class PrereqTlsMaterial(Prereq):
    def __init__(self, config=DEFAULT_CONFIG):
        super().__init__(config)
        self.name = "TLS certificate and key exist"
        self.remediation = (
            "Generate a self-signed pair with: openssl req -x509 "
            "-newkey rsa:2048 -nodes -keyout key.pem -out cert.pem "
            "-days 365 -subj '/CN=localhost'"
        )

    def check(self) -> str:
        if not self.config.ssl:
            return PRECHECK_OK
        missing = [
            name for name in (self.config.cert_file, self.config.key_file)
            if not resolve_path(self.config, name).is_file()
        ]
        if missing:
            logging.error(f"Missing TLS files: {', '.join(missing)}")
            logging.error(f"Possible remediation: {self.remediation}")
            return PRECHECK_ERROR
        return PRECHECK_OK


class PrereqPortAvailable(Prereq):
    def __init__(self, config=DEFAULT_CONFIG):
        super().__init__(config)
        self.name = f"port {config.port} is free"
        self.remediation = (
            f"Stop the process listening on port {config.port} "
            "(a mockup server may already be running)"
        )

    def check(self) -> str:
        if port_in_use(self.config.port):
            logging.error(f"Port {self.config.port} is already in use")
            logging.error(f"Possible remediation: {self.remediation}")
            return PRECHECK_ERROR
        return PRECHECK_OK


class PrereqMockServerRunning(Prereq):
    def __init__(self, config=DEFAULT_CONFIG):
        super().__init__(config)
        self.name = "Redfish mockup server answers on the service root"
        self.remediation = (
            "Start the server with 'python scripts/run_mock_server.py'"
        )

    def check(self) -> str:
        status = PRECHECK_WARNING

        # Retry configuration
        max_retry_time = 3.0
        base_delay = 0.1
        multiplier = 2

        url = f"{base_url(self.config)}{SERVICE_ROOT}"
        start_time = time.time()
        attempt = 0

        while time.time() - start_time < max_retry_time:
            try:
                response = requests.get(url, timeout=2.0, verify=False)
                if response.status_code == 200:
                    logging.info(f"Mockup server is answering at {url}")
                    return PRECHECK_OK
                logging.debug(
                    f"Mockup server responded with status code: "
                    f"{response.status_code} (attempt {attempt + 1})"
                )
                status = PRECHECK_ERROR
            except (requests.exceptions.ConnectionError,
                    requests.exceptions.Timeout) as e:
                logging.debug(
                    f"Connection error to mockup server: {e} "
                    f"(attempt {attempt + 1})"
                )
                status = PRECHECK_WARNING

            elapsed = time.time() - start_time
            delay = base_delay * (multiplier ** attempt)
            if delay > max_retry_time - elapsed:
                break

            logging.debug(f"Retrying in {delay:.1f}s... "
                          f"(attempt {attempt + 1})")
            time.sleep(delay)
            attempt += 1

        if status == PRECHECK_WARNING:
            logging.warning(f"Cannot connect to mockup server at {url}")
        else:
            logging.error(f"Mockup server at {url} is not serving mockups")
        logging.warning(f"Possible remediation: {self.remediation}")
        return status


# Needed before the launcher can start the server
LAUNCH_PREREQS = [
    PrereqPip,
    PrereqInterpreter,
    PrereqRequirementsFile,
    PrereqEntryPoint,
    PrereqMockupDir,
    PrereqTlsMaterial,
    PrereqPortAvailable,
]

# Needed by the e2e tests, which talk to a running server
E2E_PREREQS = [
    PrereqInterpreter,
    PrereqMockServerRunning,
]

ALL_PREREQS = LAUNCH_PREREQS + [PrereqMockServerRunning]

PREREQ_MODES = {
    "launch": LAUNCH_PREREQS,
    "e2e": E2E_PREREQS,
    "full": ALL_PREREQS,
}


def run_check(prereq) -> str:
    """Run one check with logging silenced, returning its status."""
    old_level = logging.getLogger().level
    logging.getLogger().setLevel(logging.CRITICAL)
    try:
        return prereq.check()
    finally:
        logging.getLogger().setLevel(old_level)


def check_prerequisites(prereq_list=None, config=DEFAULT_CONFIG, report=None):
    """
    Check a list of prerequisites and return results.

    Args:
        prereq_list: List of prerequisite classes to check.
        Defaults to ALL_PREREQS.
        config: Launch profile the checks are run against.
        report: Optional callable taking (prereq, status_text), invoked
        after each check.

    Returns:
        tuple: (passed_count, total_count, failed_prereqs)
    """
    if prereq_list is None:
        prereq_list = ALL_PREREQS

    passed = 0
    total = len(prereq_list)
    failed_prereqs = []

    for prereq_class in prereq_list:
        prereq = prereq_class(config)

        try:
            result = run_check(prereq)
            if result in [PRECHECK_OK, PRECHECK_WARNING]:
                passed += 1
            else:
                failed_prereqs.append(prereq)

        except Exception as e:
            logging.error(
                f"Error checking {prereq.name}: {str(e)}"
            )
            failed_prereqs.append(prereq)
            result = f"{PRECHECK_ERROR}: {e}"

        if report is not None:
            report(prereq, result)

    return passed, total, failed_prereqs


def check_environment_ready(mode="launch", config=DEFAULT_CONFIG):
    """
    Validate that the environment has what the given mode needs.

    Args:
        mode: One of 'launch', 'e2e', 'full'

    Returns:
        bool: True if environment is ready, False otherwise
    """
    prereq_list = PREREQ_MODES.get(mode, ALL_PREREQS)

    passed, total, failed_prereqs = check_prerequisites(prereq_list, config)

    if failed_prereqs:
        print(f"Environment not ready for {mode}. "
              f"Failed prerequisites:")
        for prereq in failed_prereqs:
            print(f"  - {prereq.name}: {prereq.remediation}")
        return False

    print(f"Environment is ready for {mode}!")
    return True
