"""In-process CLI runner for integration tests.

Calls artifactory_cli.cli.main() directly instead of spawning a subprocess,
capturing stdout/stderr the same way subprocess would. stdout is a text
wrapper over a byte buffer so commands that echo through sys.stdout.buffer
are captured too.

Usage:
    from tests.integration.cli_runner import run_cli

    result = run_cli("info", "--url", server.api_url, "--username", "admin", ...)
    assert result.returncode == 0
    assert "SYSTEM INFORMATION" in result.stdout
"""

from __future__ import annotations

import io
import sys
import traceback
from dataclasses import dataclass


@dataclass
class CLIResult:
    """Result of an in-process CLI invocation, matching subprocess interface.

    Attributes:
        returncode: Exit code (0 = success, 1 = error).
        stdout: Captured standard output as string.
        stderr: Captured standard error as string.
    """

    returncode: int
    stdout: str
    stderr: str


def run_cli(*args: str) -> CLIResult:
    """Run the artifactory-cli in-process, capturing stdout/stderr.

    Equivalent to subprocess.run([sys.executable, "-m", "artifactory_cli.cli", *args]).

    Args:
        *args: CLI arguments (e.g., "info", "--host", "localhost:8081").

    Returns:
        CLIResult with returncode, stdout, and stderr.
    """
    from artifactory_cli.cli import main

    old_stdout = sys.stdout
    old_stderr = sys.stderr

    stdout_bytes = io.BytesIO()
    captured_stdout = io.TextIOWrapper(stdout_bytes, encoding="utf-8", write_through=True)
    captured_stderr = io.StringIO()

    sys.stdout = captured_stdout
    sys.stderr = captured_stderr

    try:
        returncode = main(list(args))
    except SystemExit as e:
        # argparse calls sys.exit on parse errors
        returncode = e.code if isinstance(e.code, int) else 1
    except Exception as e:
        # Unexpected error: print to captured stderr for debugging
        captured_stderr.write(f"Unexpected error: {e}\n")
        captured_stderr.write(traceback.format_exc())
        returncode = 1
    finally:
        captured_stdout.flush()
        stdout_val = stdout_bytes.getvalue().decode("utf-8", errors="replace")
        stderr_val = captured_stderr.getvalue()
        sys.stdout = old_stdout
        sys.stderr = old_stderr

    return CLIResult(returncode=returncode, stdout=stdout_val, stderr=stderr_val)
