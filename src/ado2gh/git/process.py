"""External process execution with timeout and process-tree termination."""

import asyncio
import os
import signal
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from loguru import logger

from ..utils.logging import mask_secrets


@dataclass
class ProcessResult:
    """Result of an external command."""

    returncode: int
    stdout: str = ''
    stderr: str = ''
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return (self.stderr or self.stdout).strip()


class ProcessRunner:
    """Runs external commands in their own process group.

    On timeout the whole group is killed, so helpers spawned by the command
    (git remote helpers, the git-tfs bridge) do not outlive it.
    """

    def __init__(self, secrets: Iterable[Optional[str]] = ()):
        """Initialize process runner.

        Args:
            secrets: Values masked whenever a command line is logged
        """
        self.secrets = [secret for secret in secrets if secret]
        self.logger = logger.bind(component='ProcessRunner')

    def mask(self, text: str) -> str:
        return mask_secrets(text, self.secrets)

    async def run(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ProcessResult:
        """Run a command and capture its output.

        Args:
            args: Program and arguments
            cwd: Working directory
            timeout: Seconds before the process tree is killed
            env: Extra environment variables for the child only

        Returns:
            Process result; a timeout yields ``timed_out`` and returncode -1
        """
        command_line = self.mask(' '.join(args))
        self.logger.debug(f'Executing: {command_line}')

        child_env = None
        if env:
            child_env = os.environ.copy()
            child_env.update(env)

        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=child_env,
            start_new_session=True,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError:
            self.logger.error(f'Command timed out after {timeout}s: {command_line}')
            await self._kill_tree(process)
            return ProcessResult(
                returncode=-1,
                stderr=f'Command timed out after {timeout} seconds',
                timed_out=True,
            )

        result = ProcessResult(
            returncode=process.returncode,
            stdout=self.mask(stdout.decode('utf-8', errors='replace')),
            stderr=self.mask(stderr.decode('utf-8', errors='replace')),
        )
        if not result.success:
            self.logger.debug(
                f'Command exited with {result.returncode}: {command_line}'
            )
        return result

    async def _kill_tree(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            if hasattr(os, 'killpg'):
                os.killpg(os.getpgid(process.pid), signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
