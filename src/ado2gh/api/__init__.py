"""Platform API clients."""

from .client import APIResponse, PlatformClient
from .source import SourceClient
from .target import TargetClient

__all__ = ['APIResponse', 'PlatformClient', 'SourceClient', 'TargetClient']
