"""Repository content transfer from Azure DevOps to GitHub."""

import asyncio
import os
import shutil
import tempfile
from typing import Dict, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from loguru import logger

from .process import ProcessResult, ProcessRunner
from ..exceptions import ExternalToolError
from ..models.repository import Repository, RepositoryKind
from ..models.results import TransferResult


TARGET_REMOTE = 'target'
TFS_PAT_VARIABLE = 'GIT_TFS_PAT'


class ContentTransferer:
    """Moves version-controlled content into an existing target repository.

    Git repositories are mirrored; TFVC repositories are converted with the
    ``git tfs`` bridge and then pushed branch by branch. Every transfer works
    in its own temporary directory, which is removed whatever the outcome.
    """

    def __init__(
        self,
        target_organization: str,
        target_token: str,
        source_pat: Optional[str] = None,
        git_host: str = 'github.com',
        working_dir: Optional[str] = None,
        timeout: int = 3600,
        probe_timeout: int = 30,
        push_retries: int = 3,
        retry_delay_seconds: float = 30,
        disable_ssl_verify: bool = False,
        use_pat_for_clone: bool = True,
        cleanup_temp: bool = True,
        runner: Optional[ProcessRunner] = None,
    ):
        """Initialize content transferer.

        Args:
            target_organization: Target organization login
            target_token: Token embedded in the push URL
            source_pat: Source PAT for clone URLs and the TFVC bridge
            git_host: Target git host
            working_dir: Parent directory of temporary clones
            timeout: Timeout of clone, convert and push commands
            probe_timeout: Timeout of the reachability probe
            push_retries: Attempts for each push (and each TFVC conversion)
            retry_delay_seconds: Fixed delay between attempts
            disable_ssl_verify: Pass ``http.sslVerify=false`` to git
            use_pat_for_clone: Embed the source PAT in the clone URL
            cleanup_temp: Remove temporary directories afterwards
            runner: Process runner (created with both secrets masked by default)
        """
        self.target_organization = target_organization
        self.target_token = target_token
        self.source_pat = source_pat
        self.git_host = git_host
        self.working_dir = working_dir
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.push_retries = max(1, push_retries)
        self.retry_delay_seconds = retry_delay_seconds
        self.disable_ssl_verify = disable_ssl_verify
        self.use_pat_for_clone = use_pat_for_clone
        self.cleanup_temp = cleanup_temp
        self.runner = runner or ProcessRunner(secrets=[target_token, source_pat])
        self.logger = logger.bind(component='ContentTransferer')

    async def transfer(self, repository: Repository) -> TransferResult:
        """Transfer a repository's content to its target repository.

        Args:
            repository: Source repository with ``target_name`` resolved

        Returns:
            ``COMPLETED``, ``FAILED`` or ``SKIPPED`` transfer result
        """
        if repository.kind == RepositoryKind.GIT and repository.branch_count == 0:
            return TransferResult.skipped('No branches to migrate')
        if not repository.target_name:
            return TransferResult.failed('Target repository name is not resolved')

        if self.working_dir:
            os.makedirs(self.working_dir, exist_ok=True)
        temp_dir = tempfile.mkdtemp(
            prefix=f'{repository.target_name}_', dir=self.working_dir
        )
        env: Dict[str, str] = {}
        self.logger.info(
            f'Transferring {repository.project_name}/{repository.name} -> '
            f'{self.target_organization}/{repository.target_name}'
        )

        try:
            if repository.kind == RepositoryKind.TFVC:
                env[TFS_PAT_VARIABLE] = self.source_pat or ''
                attempts = await self._transfer_tfvc(repository, temp_dir, env)
            else:
                attempts = await self._transfer_git(repository, temp_dir)
        except ExternalToolError as e:
            self.logger.error(f'Transfer of {repository.name} failed: {e}')
            return TransferResult.failed(str(e))
        finally:
            env.pop(TFS_PAT_VARIABLE, None)
            if self.cleanup_temp:
                shutil.rmtree(temp_dir, ignore_errors=True)
                self.logger.debug(f'Removed temporary directory {temp_dir}')

        self.logger.info(f'Transferred {repository.name} to {repository.target_name}')
        return TransferResult.completed(attempts=attempts)

    async def _transfer_git(self, repository: Repository, temp_dir: str) -> int:
        source_url = self.source_clone_url(repository.url)
        clone_dir = os.path.join(temp_dir, 'mirror.git')

        probe = await self._git(['ls-remote', source_url], timeout=self.probe_timeout)
        if not probe.success:
            raise ExternalToolError(
                f'Failed to access source repository {repository.name}: '
                f'{probe.output}',
                command='git ls-remote',
                returncode=probe.returncode,
                stderr=probe.stderr,
            )

        clone = await self._git(
            ['clone', '--mirror', '--progress', source_url, clone_dir],
            timeout=self.timeout,
        )
        if not clone.success:
            raise ExternalToolError(
                f'Git clone failed: {clone.output}',
                command='git clone --mirror',
                returncode=clone.returncode,
                stderr=clone.stderr,
            )

        await self._add_target_remote(repository, clone_dir)
        return await self._push_with_retries(
            [['push', '--mirror', TARGET_REMOTE]], cwd=clone_dir
        )

    async def _transfer_tfvc(
        self, repository: Repository, temp_dir: str, env: Dict[str, str]
    ) -> int:
        collection_url = repository.url.rsplit('/', 1)[0]
        tfvc_path = f'$/{repository.project_name or repository.name}'
        clone_dir = os.path.join(temp_dir, 'repo')

        last: Optional[ProcessResult] = None
        for attempt in range(1, self.push_retries + 1):
            if os.path.exists(clone_dir):
                shutil.rmtree(clone_dir, ignore_errors=True)
            last = await self._git(
                ['tfs', 'clone', collection_url, tfvc_path, clone_dir, '--branches=all'],
                cwd=temp_dir,
                env=env,
                timeout=self.timeout,
            )
            if last.success:
                break
            self.logger.warning(
                f'git-tfs clone attempt {attempt}/{self.push_retries} failed: '
                f'{last.output}'
            )
            if attempt < self.push_retries:
                await asyncio.sleep(self.retry_delay_seconds)
        else:
            raise ExternalToolError(
                f'Failed to convert TFVC repository after {self.push_retries} '
                f'attempts: {last.output if last else ""}',
                command='git tfs clone',
                returncode=last.returncode if last else None,
                stderr=last.stderr if last else '',
            )

        await self._add_target_remote(repository, clone_dir)
        return await self._push_with_retries(
            [
                ['push', TARGET_REMOTE, '--all'],
                ['push', TARGET_REMOTE, '--tags'],
            ],
            cwd=clone_dir,
            env=env,
        )

    async def _add_target_remote(self, repository: Repository, cwd: str) -> None:
        result = await self._git(
            ['remote', 'add', TARGET_REMOTE, self.target_push_url(repository.target_name)],
            cwd=cwd,
            timeout=self.probe_timeout,
        )
        if not result.success:
            raise ExternalToolError(
                f'Failed to add target remote: {result.output}',
                command='git remote add',
                returncode=result.returncode,
                stderr=result.stderr,
            )

    async def _push_with_retries(
        self,
        commands: List[List[str]],
        cwd: str,
        env: Optional[Dict[str, str]] = None,
    ) -> int:
        """Run the push commands in order, retrying the sequence as a whole.

        Returns:
            Number of attempts used
        """
        last: Optional[ProcessResult] = None
        for attempt in range(1, self.push_retries + 1):
            for command in commands:
                last = await self._git(command, cwd=cwd, env=env, timeout=self.timeout)
                if not last.success:
                    break
            else:
                return attempt

            self.logger.warning(
                f'Push attempt {attempt}/{self.push_retries} failed: {last.output}'
            )
            if attempt < self.push_retries:
                await asyncio.sleep(self.retry_delay_seconds)

        raise ExternalToolError(
            f'Git push failed after {self.push_retries} attempts: {last.output}',
            command='git push',
            returncode=last.returncode,
            stderr=last.stderr,
        )

    async def _git(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        command = ['git']
        if self.disable_ssl_verify:
            command.extend(['-c', 'http.sslVerify=false'])
        command.extend(args)
        return await self.runner.run(command, cwd=cwd, env=env, timeout=timeout)

    def source_clone_url(self, url: str) -> str:
        """Source URL, with the PAT embedded when configured."""
        if not self.use_pat_for_clone or not self.source_pat:
            return url
        parts = urlsplit(url)
        if not parts.scheme.startswith('http') or '@' in parts.netloc:
            return url
        netloc = f'pat:{quote(self.source_pat, safe="")}@{parts.netloc}'
        return urlunsplit(parts._replace(netloc=netloc))

    def target_push_url(self, repo_name: str) -> str:
        return (
            f'https://x-access-token:{self.target_token}@{self.git_host}/'
            f'{self.target_organization}/{repo_name}.git'
        )
