import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "pgkmers", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "pgkmers" in cp.stdout.lower()
