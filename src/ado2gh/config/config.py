"""Configuration management for the Azure DevOps to GitHub migration tool."""

from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

from ..exceptions import ConfigurationError


SUPPORTED_ADO_VERSIONS = ['cloud', '2019', '2020', '2022']
VALID_PERMISSIONS = ['pull', 'push', 'admin', 'maintain', 'triage']


def _split_list(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip().strip('"\'') for item in value.split(',') if item.strip()]
    return value


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class SourceConfig(BaseModel):
    """Azure DevOps organization settings."""

    organization: Optional[str] = Field(default=None, description='Organization')
    base_url: str = Field(
        default='https://dev.azure.com', description='Service or server URL'
    )
    pat: Optional[str] = Field(default=None, description='Personal access token')
    version: str = Field(default='cloud', description='Server version or cloud')
    projects: List[str] = Field(
        default_factory=list, description='Projects to migrate (empty means all)'
    )
    timeout: int = Field(default=30, description='Request timeout in seconds')
    max_retries: int = Field(default=3, description='Retries for transient errors')
    rate_limit_per_second: Optional[float] = Field(
        default=None, description='API requests per second limit'
    )

    @validator('base_url')
    def validate_url(cls, v):
        """Validate base URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('version', pre=True)
    def validate_version(cls, v):
        """Validate server version."""
        v = str(v or 'cloud').strip().lower()
        if v not in SUPPORTED_ADO_VERSIONS:
            raise ValueError(f'Version must be one of: {SUPPORTED_ADO_VERSIONS}')
        return v

    @validator('projects', pre=True)
    def validate_projects(cls, v):
        """Accept a comma-separated string; ``all`` means every project."""
        v = _split_list(v) or []
        if [p.lower() for p in v] == ['all']:
            return []
        return v


class TargetConfig(BaseModel):
    """GitHub organization settings."""

    organization: Optional[str] = Field(default=None, description='Organization')
    token: Optional[str] = Field(default=None, description='Personal access token')
    api_url: str = Field(default='https://api.github.com', description='REST API URL')
    git_host: str = Field(default='github.com', description='Git push host')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    max_retries: int = Field(default=5, description='Retries for transient errors')
    default_member_role: str = Field(
        default='member', description='Role for migrated team members'
    )
    rate_limit_per_second: Optional[float] = Field(
        default=None, description='API requests per second limit'
    )

    @validator('api_url')
    def validate_url(cls, v):
        """Validate API URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('default_member_role')
    def validate_role(cls, v):
        """Validate team member role."""
        if v not in ('member', 'maintainer'):
            raise ValueError('Team role must be member or maintainer')
        return v


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    repo_name_pattern: str = Field(
        default='{repoName}', description='Target repository name pattern'
    )
    team_name_pattern: str = Field(
        default='{teamName}', description='Target team name pattern'
    )
    migrate_teams: bool = Field(default=True, description='Migrate teams')
    users_mapping_file: Optional[str] = Field(
        default=None, description='CSV file mapping source users to target logins'
    )
    skip_confirmation: bool = Field(
        default=False, description='Do not ask before migrating'
    )

    max_concurrent_transfers: int = Field(
        default=4, description='Concurrent repository transfers per project'
    )
    member_batch_size: int = Field(
        default=10, description='Concurrent team members to process'
    )
    team_repository_permission: str = Field(
        default='push', description='Permission granted to teams on repositories'
    )
    push_retries: int = Field(default=3, description='Attempts for each git push')
    retry_delay_seconds: float = Field(
        default=30, description='Delay between push attempts'
    )
    default_branch_retries: int = Field(
        default=3, description='Attempts for default branch correction'
    )
    default_branch_retry_delay_seconds: float = Field(
        default=5, description='Delay between default branch attempts'
    )

    @validator(
        'max_concurrent_transfers',
        'member_batch_size',
        'push_retries',
        'default_branch_retries',
    )
    def validate_positive(cls, v):
        """Validate counts are positive."""
        if v <= 0:
            raise ValueError('Value must be positive')
        return v

    @validator('retry_delay_seconds', 'default_branch_retry_delay_seconds')
    def validate_delay(cls, v):
        """Validate delays are not negative."""
        if v < 0:
            raise ValueError('Delay cannot be negative')
        return v

    @validator('team_repository_permission')
    def validate_permission(cls, v):
        """Validate team repository permission."""
        if v not in VALID_PERMISSIONS:
            raise ValueError(f'Permission must be one of: {VALID_PERMISSIONS}')
        return v


class GitConfig(BaseModel):
    """Git operations configuration."""

    working_dir: Optional[str] = Field(
        default=None,
        description='Directory for temporary clones. If not specified, uses system temp directory.',
    )
    timeout: int = Field(
        default=3600, description='Git operation timeout in seconds (default: 1 hour)'
    )
    probe_timeout: int = Field(
        default=30, description='Timeout of the source reachability probe'
    )
    disable_ssl_verify: bool = Field(
        default=False, description='Pass http.sslVerify=false to git commands'
    )
    use_pat_for_clone: bool = Field(
        default=True, description='Embed the source PAT in clone URLs'
    )
    cleanup_temp: bool = Field(
        default=True,
        description='Whether to cleanup temporary directories after migration',
    )

    @validator('working_dir')
    def validate_working_dir(cls, v):
        """Validate working directory path."""
        if v is not None:
            path = Path(v).expanduser()
            path.mkdir(parents=True, exist_ok=True)
            if not path.is_dir():
                raise ValueError(f'working_dir path is not a directory: {v}')
            return str(path.resolve())
        return v

    @validator('timeout', 'probe_timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Git timeout must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: str = Field(
        default='{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}',
        description='Log format',
    )

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the migration tool."""

    source: SourceConfig = Field(
        default_factory=SourceConfig, description='Azure DevOps source'
    )
    target: TargetConfig = Field(
        default_factory=TargetConfig, description='GitHub target'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    git: GitConfig = Field(
        default_factory=GitConfig, description='Git operations settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'  # Don't allow extra fields

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'source': {
                'organization': os.getenv('ADO_ORG'),
                'pat': os.getenv('ADO_PAT'),
                'base_url': os.getenv('ADO_BASE_URL'),
                'version': os.getenv('ADO_VERSION'),
                'projects': os.getenv('ADO_PROJECTS'),
            },
            'target': {
                'organization': os.getenv('GH_ORG'),
                'token': os.getenv('GH_TOKEN'),
                'api_url': os.getenv('GH_API_URL'),
                'git_host': os.getenv('GH_GIT_HOST'),
            },
            'migration': {
                'repo_name_pattern': os.getenv('MIGRATION_REPO_PATTERN'),
                'team_name_pattern': os.getenv('MIGRATION_TEAM_PATTERN'),
                'users_mapping_file': os.getenv('MIGRATION_USERS_MAPPING_FILE'),
                'migrate_teams': _env_bool('MIGRATION_MIGRATE_TEAMS', 'true'),
                'max_concurrent_transfers': int(
                    os.getenv('MIGRATION_MAX_CONCURRENT_TRANSFERS', 4)
                ),
                'team_repository_permission': os.getenv(
                    'MIGRATION_TEAM_PERMISSION', 'push'
                ),
            },
            'git': {
                'working_dir': os.getenv('GIT_WORKING_DIR'),
                'timeout': int(os.getenv('GIT_TIMEOUT', 3600)),
                'disable_ssl_verify': _env_bool('GIT_DISABLE_SSL_VERIFY'),
                'cleanup_temp': _env_bool('GIT_CLEANUP_TEMP', 'true'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def validate_required(self) -> None:
        """Check the settings a migration cannot start without.

        Raises:
            ConfigurationError: Listing every missing or unusable setting
        """
        missing = []
        if not self.source.organization:
            missing.append('Azure DevOps organization (source.organization)')
        if not self.source.pat:
            missing.append('Azure DevOps PAT (source.pat)')
        if not self.target.organization:
            missing.append('GitHub organization (target.organization)')
        if not self.target.token:
            missing.append('GitHub token (target.token)')

        if self.migration.migrate_teams:
            mapping_file = self.migration.users_mapping_file
            if not mapping_file:
                missing.append(
                    'Users mapping file (migration.users_mapping_file), '
                    'required when migrate_teams is enabled'
                )
            elif not Path(mapping_file).is_file() or not os.access(
                mapping_file, os.R_OK
            ):
                missing.append(f'Readable users mapping file: {mapping_file}')

        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                missing=missing,
            )

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.dict(), f, default_flow_style=False, indent=2, sort_keys=False
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'source': {
                'organization': 'your-ado-organization',
                'base_url': 'https://dev.azure.com',
                'pat': 'your-ado-personal-access-token',
                'version': 'cloud',
                'projects': [],
                'timeout': 30,
                'max_retries': 3,
            },
            'target': {
                'organization': 'your-github-organization',
                'token': 'your-github-personal-access-token',
                'api_url': 'https://api.github.com',
                'git_host': 'github.com',
                'timeout': 30,
                'max_retries': 5,
                'default_member_role': 'member',
            },
            'migration': {
                'repo_name_pattern': '{repoName}',
                'team_name_pattern': '{teamName}',
                'migrate_teams': True,
                'users_mapping_file': 'user_mapping.csv',
                'skip_confirmation': False,
                'max_concurrent_transfers': 4,
                'member_batch_size': 10,
                'team_repository_permission': 'push',
                'push_retries': 3,
                'retry_delay_seconds': 30,
                'default_branch_retries': 3,
                'default_branch_retry_delay_seconds': 5,
            },
            'git': {
                'working_dir': None,
                'timeout': 3600,
                'probe_timeout': 30,
                'disable_ssl_verify': False,
                'use_pat_for_clone': True,
                'cleanup_temp': True,
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
                'format': '{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
