"""Migration-level exceptions."""

from typing import List, Optional


class MigrationError(Exception):
    """Base exception for migration errors."""

    pass


class ConfigurationError(MigrationError):
    """Required configuration is missing or invalid.

    Raised before any API call is made; aborts the run.
    """

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class NameResolutionError(MigrationError):
    """A target name could not be generated for an entity."""

    pass


class ExternalToolError(MigrationError):
    """An external tool (git, git-tfs) exited unsuccessfully."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        returncode: Optional[int] = None,
        stderr: str = '',
    ):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
