"""Construction of platform clients from configuration."""

from .source import SourceClient
from .target import TargetClient
from ..config.config import SourceConfig, TargetConfig
from ..exceptions import ConfigurationError


class ClientFactory:
    """Factory for creating platform API clients."""

    @staticmethod
    def create_source_client(config: SourceConfig, **kwargs) -> SourceClient:
        """Create the Azure DevOps client from configuration.

        Args:
            config: Source configuration
            **kwargs: Extra client arguments (e.g. ``session_factory``)

        Returns:
            Configured source client

        Raises:
            ConfigurationError: If organization or PAT is missing
        """
        if not config.organization or not config.pat:
            raise ConfigurationError(
                'Azure DevOps organization and PAT must be provided',
                missing=['source.organization', 'source.pat'],
            )
        return SourceClient(
            organization=config.organization,
            pat=config.pat,
            base_url=config.base_url,
            version=config.version,
            timeout=config.timeout,
            max_retries=config.max_retries,
            rate_limit_per_second=config.rate_limit_per_second,
            **kwargs,
        )

    @staticmethod
    def create_target_client(config: TargetConfig, **kwargs) -> TargetClient:
        """Create the GitHub client from configuration.

        Raises:
            ConfigurationError: If organization or token is missing
        """
        if not config.organization or not config.token:
            raise ConfigurationError(
                'GitHub organization and token must be provided',
                missing=['target.organization', 'target.token'],
            )
        return TargetClient(
            organization=config.organization,
            token=config.token,
            api_url=config.api_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
            default_member_role=config.default_member_role,
            rate_limit_per_second=config.rate_limit_per_second,
            **kwargs,
        )
