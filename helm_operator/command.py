"""Library for issuing commands using asyncio and returning the result."""

import asyncio
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field

from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 20
_SEM = asyncio.Semaphore(_CONCURRENCY)


# No public API
__all__: list[str] = []


@dataclass
class CommandResult:
    """Output of a finished command."""

    returncode: int
    stdout: str
    stderr: str


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    retcodes: list[int] = field(default_factory=list)
    """Non-zero error codes that are returned to the caller instead of raising."""

    env: dict[str, str] | None = None
    """Environment variables for the subprocess."""

    timeout: float | None = None
    """Seconds to wait before killing the subprocess."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        return self.string

    async def run(self) -> CommandResult:
        """Run the command, returning its output.

        The subprocess is killed if the calling task is cancelled or the
        timeout expires so a blocked backend call never outlives its caller.
        """
        _LOGGER.debug("Running command: %s", self)
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        proc = await asyncio.create_subprocess_shell(
            self.string,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
        try:
            async with asyncio.timeout(self.timeout):
                out, err = await proc.communicate()
        except TimeoutError as timeout_err:
            _kill(proc)
            raise self.exc(f"Command '{self}' timed out") from timeout_err
        except asyncio.CancelledError:
            _LOGGER.debug("Command '%s' cancelled, killing process", self)
            _kill(proc)
            raise
        result = CommandResult(
            returncode=proc.returncode or 0,
            stdout=out.decode("utf-8"),
            stderr=err.decode("utf-8"),
        )
        if result.returncode and result.returncode not in self.retcodes:
            errors = [f"Command '{self}' failed with return code {result.returncode}"]
            if result.stdout:
                errors.append(result.stdout)
            if result.stderr:
                errors.append(result.stderr)
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return result


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run(cmd: Command) -> CommandResult:
    """Run the specified command and return its output."""
    async with _SEM:
        return await cmd.run()
