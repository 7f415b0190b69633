"""Describing, printing and running external commands."""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass, field
from pathlib import Path


class CommandError(RuntimeError):
    """Raised when a command exits unsuccessfully."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


@dataclass
class Command:
    """A program to run, with its arguments, environment overrides and directory.

    An environment value of ``None`` removes that variable for the child.
    """

    program: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str | None] = field(default_factory=dict)
    cwd: Path | None = None

    def child_environment(self) -> dict[str, str]:
        """Return the full environment the program will run with."""
        environment = dict(os.environ)
        for name, value in self.env.items():
            if value is None:
                environment.pop(name, None)
            else:
                environment[name] = value
        return environment


def command_to_string(cmd: Command) -> str:
    """Format a command as a string, e.g. ``VAR=val program --arg1 arg2``."""
    parts = [f"{name}={value or ''}" for name, value in sorted(cmd.env.items())]
    parts.append(cmd.program)
    parts.extend(cmd.args)
    return " ".join(parts)


def _describe_status(returncode: int) -> str:
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            return f"signal: {-returncode}"
        return f"signal: {-returncode} ({name})"
    return f"exit status: {returncode}"


def run_cmd(cmd: Command) -> None:
    """Print a command, run it and check that it completes successfully."""
    print(command_to_string(cmd), flush=True)
    completed = subprocess.run(
        [cmd.program, *cmd.args],
        env=cmd.child_environment(),
        cwd=cmd.cwd,
        check=False,
    )
    if completed.returncode != 0:
        raise CommandError(
            f"command failed: {_describe_status(completed.returncode)}",
            completed.returncode,
        )