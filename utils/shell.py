"""
utils/shell.py
Thin subprocess wrapper used for every external OS command (ss, lsof, ps,
docker, systemctl, ...). Callers receive stdout text or a typed exception.
"""

from __future__ import annotations

import subprocess
from typing import Callable, Iterable, Sequence

from utils.constants import COMMAND_TIMEOUT_S

Runner = Callable[..., str]


class CommandError(RuntimeError):
    """Command exited with an unexpected status or timed out."""

    def __init__(self, args: Sequence[str], message: str, returncode: int | None = None):
        super().__init__(f"{' '.join(args)}: {message}")
        self.cmd = list(args)
        self.returncode = returncode


class ToolNotFoundError(CommandError):
    """Executable is not installed / not on PATH."""


def run_command(
    args: Sequence[str],
    timeout: float = COMMAND_TIMEOUT_S,
    ok_codes: Iterable[int] = (0,),
) -> str:
    """Run a command and return stdout (text)."""
    try:
        proc = subprocess.run(
            list(args),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ToolNotFoundError(args, "not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandError(args, f"timed out after {timeout}s") from exc
    except OSError as exc:
        raise CommandError(args, str(exc)) from exc

    if proc.returncode not in tuple(ok_codes):
        detail = (proc.stderr or "").strip() or f"exit status {proc.returncode}"
        raise CommandError(args, detail, proc.returncode)
    return proc.stdout


__all__ = ["CommandError", "ToolNotFoundError", "Runner", "run_command"]
