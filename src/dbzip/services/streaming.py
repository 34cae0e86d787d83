"""Streaming subprocess runner shared by the backup producers."""

import subprocess
import time
from collections.abc import Callable, Mapping
from pathlib import Path


class StreamingError(Exception):
    """Streaming subprocess operation failed."""

    pass


def run_streaming_subprocess(
    cmd: list[str],
    on_line: Callable[[str], None] | None = None,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: int = 600,
    error_class: type[Exception] = StreamingError,
    service_name: str = "Process",
    error_tail: int = 20,
) -> list[str]:
    """Run a subprocess, handing each output line to ``on_line`` as it arrives.

    stdout and stderr are merged so that a tool that reports progress on one
    stream and errors on the other keeps its ordering.

    Args:
        cmd: Command to execute as a list of strings
        on_line: Called with every non-blank, stripped output line
        cwd: Working directory for the subprocess
        env: Environment for the subprocess (inherits when None)
        timeout: Timeout in seconds (default: 600)
        error_class: Exception class to raise on errors
        service_name: Name of the service for error messages
        error_tail: Number of trailing output lines quoted in failure messages

    Returns:
        All non-blank output lines

    Raises:
        error_class: If the process cannot start, fails, or times out
    """
    try:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            bufsize=1,  # Line buffered
        )
    except FileNotFoundError:
        raise error_class(f"Command not found: {cmd[0]}") from None

    lines: list[str] = []
    assert process.stdout is not None

    try:
        start_time = time.monotonic()

        while True:
            # Check timeout
            if time.monotonic() - start_time > timeout:
                process.terminate()
                process.wait(timeout=5)
                raise error_class(f"{service_name} timed out after {timeout} seconds")

            line = process.stdout.readline()
            if not line:
                # Empty string means EOF
                break

            line = line.strip()
            if not line:
                continue

            lines.append(line)
            if on_line is not None:
                on_line(line)

        process.wait()
        if process.returncode != 0:
            detail = "\n".join(lines[-error_tail:]) or f"exit code {process.returncode}"
            raise error_class(f"{service_name} failed: {detail}")

        return lines
    finally:
        # Ensure process is terminated on any exception (including KeyboardInterrupt)
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
