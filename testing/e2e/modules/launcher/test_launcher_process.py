"""
E2E tests that run scripts/run_mock_server.py as a real process.

A stand-in redfishMockupServer.py records its arguments and exits with a
chosen status, so these tests need neither the real server nor the network.
"""
import json
import subprocess
import sys

import pytest

EXPECTED_ARGS = [
    "--port", "1266",
    "--dir", "mockups/dell/",
    "--ssl",
    "--cert", "cert.pem",
    "--key", "key.pem",
]

FAKE_SERVER = """\
import json
import os
import sys

with open("argv.json", "w") as f:
    json.dump(sys.argv[1:], f)
sys.exit(int(os.environ.get("FAKE_SERVER_EXIT", "0")))
"""


@pytest.fixture
def workdir(tmp_path):
    (tmp_path / "redfishMockupServer.py").write_text(FAKE_SERVER)
    (tmp_path / "requirements.txt").write_text("")
    return tmp_path


def run_launcher(project_root, workdir, *extra):
    profile = workdir / "profile.yaml"
    profile.write_text(f"mock_server:\n  workdir: {workdir}\n")
    cmd = [
        sys.executable, str(project_root / "scripts" / "run_mock_server.py"),
        "--config", str(profile), "--skip-install", *extra,
    ]
    return subprocess.run(cmd, capture_output=True, text=True, cwd=workdir)


def test_server_receives_fixed_arguments(project_root, workdir):
    result = run_launcher(project_root, workdir)

    assert result.returncode == 0, result.stderr
    recorded = json.loads((workdir / "argv.json").read_text())
    assert recorded == EXPECTED_ARGS


def test_server_exit_status_propagates(project_root, workdir, monkeypatch):
    monkeypatch.setenv("FAKE_SERVER_EXIT", "3")
    result = run_launcher(project_root, workdir)

    assert result.returncode == 3


def test_dry_run_prints_command(project_root, workdir):
    result = run_launcher(project_root, workdir, "--dry-run")

    assert result.returncode == 0, result.stderr
    last_line = result.stdout.strip().splitlines()[-1]
    assert last_line.split()[1:] == ["redfishMockupServer.py"] + EXPECTED_ARGS
    assert not (workdir / "argv.json").exists()


def test_provisioning_failure_stops_launch(project_root, workdir):
    (workdir / "requirements.txt").unlink()
    profile = workdir / "profile.yaml"
    profile.write_text(f"mock_server:\n  workdir: {workdir}\n")
    result = subprocess.run(
        [sys.executable, str(project_root / "scripts" / "run_mock_server.py"),
         "--config", str(profile)],
        capture_output=True, text=True, cwd=workdir,
    )

    assert result.returncode == 1
    assert "Dependency manifest not found" in result.stderr
    assert not (workdir / "argv.json").exists()
