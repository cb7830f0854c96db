"""Git operations module for repository content transfer."""

from .process import ProcessResult, ProcessRunner
from .transfer import ContentTransferer

__all__ = ['ProcessResult', 'ProcessRunner', 'ContentTransferer']
