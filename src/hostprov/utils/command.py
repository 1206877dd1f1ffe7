"""External command execution."""

import asyncio
import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional

from hostprov.models.config import CommandConfig


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result from running a command."""
    returncode: int
    stdout: str = ""
    stderr: str = ""


async def run_command(
    cmd: List[str],
    check: bool = True,
    capture_output: bool = True,
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
) -> CommandResult:
    """Run a command asynchronously.

    Raises subprocess.TimeoutExpired after killing the process when the
    timeout elapses, and subprocess.CalledProcessError on a non-zero exit
    when check is set.
    """
    logger.debug(f"Running command: {shlex.join(cmd)}")

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE if capture_output else None,
        stderr=asyncio.subprocess.PIPE if capture_output else None,
        env=env,
        cwd=cwd,
    )

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise subprocess.TimeoutExpired(cmd, timeout)

    result = CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace") if stdout else "",
        stderr=stderr.decode(errors="replace") if stderr else "",
    )

    if check and process.returncode != 0:
        error = subprocess.CalledProcessError(
            process.returncode, cmd
        )
        error.stdout = result.stdout
        error.stderr = result.stderr
        raise error

    return result


class CommandRunner:
    """Runs commands with an explicit environment, working directory and timeout."""

    def __init__(self, env: Dict[str, str], cwd: str = "/", timeout: float = 300):
        self.env = dict(env)
        self.cwd = cwd
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: CommandConfig) -> "CommandRunner":
        return cls(env=config.env, cwd=config.cwd, timeout=config.timeout)

    async def run(
        self,
        cmd: List[str],
        check: bool = True,
        timeout: Optional[float] = None,
        retries: int = 0,
        retry_delay: float = 1.0,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """Run a command, retrying non-zero exits up to `retries` times.

        Timeouts are never retried.
        """
        merged_env = {**self.env, **(env or {})}
        attempt = 0
        while True:
            try:
                return await run_command(
                    cmd,
                    check=check,
                    timeout=timeout or self.timeout,
                    env=merged_env,
                    cwd=self.cwd,
                )
            except subprocess.CalledProcessError as e:
                if attempt >= retries:
                    raise
                attempt += 1
                logger.warning(
                    f"Command {cmd[0]} failed with exit code {e.returncode}, "
                    f"retry {attempt}/{retries} in {retry_delay:g}s"
                )
                await asyncio.sleep(retry_delay)
