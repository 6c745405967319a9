"""Configuration management for GitHub Migration Tool."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, Field, SecretStr, validator
import yaml
from dotenv import load_dotenv


VALID_VISIBILITIES = ('private', 'public', 'internal')


class GitHubConfig(BaseModel):
    """Configuration for the target GitHub instance."""

    api_url: str = Field(
        default='https://api.github.com', description='GitHub API base URL'
    )
    token: Optional[SecretStr] = Field(
        default=None, description='Personal access token for the target org'
    )
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )

    @validator('api_url')
    def validate_api_url(cls, v):
        """Validate GitHub API URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v

    @property
    def graphql_url(self) -> str:
        """GraphQL endpoint for this instance."""
        return f'{self.api_url}/graphql'


class AdoConfig(BaseModel):
    """Azure DevOps source settings."""

    base_url: str = Field(
        default='https://dev.azure.com', description='Azure DevOps base URL'
    )
    token: Optional[SecretStr] = Field(
        default=None, description='Azure DevOps personal access token'
    )


class BbsConfig(BaseModel):
    """Bitbucket Server source settings."""

    server_url: Optional[str] = Field(
        default=None, description='Bitbucket Server URL'
    )
    username: Optional[str] = Field(default=None, description='Bitbucket username')
    password: Optional[SecretStr] = Field(
        default=None, description='Bitbucket password'
    )


class MigrationConfig(BaseModel):
    """Migration lifecycle configuration."""

    poll_interval_seconds: float = Field(
        default=10.0, description='Delay between migration status checks'
    )
    target_repo_visibility: str = Field(
        default='private', description='Visibility of migrated repositories'
    )
    wait: bool = Field(
        default=False, description='Wait for migrations to reach a terminal state'
    )

    @validator('poll_interval_seconds')
    def validate_poll_interval(cls, v):
        """Validate poll interval is positive."""
        if v <= 0:
            raise ValueError('Poll interval must be positive')
        return v

    @validator('target_repo_visibility')
    def validate_visibility(cls, v):
        """Validate repository visibility."""
        if v.lower() not in VALID_VISIBILITIES:
            raise ValueError(f'Visibility must be one of: {list(VALID_VISIBILITIES)}')
        return v.lower()


class ScriptConfig(BaseModel):
    """Script generation settings."""

    output: str = Field(default='migrate.sh', description='Generated script path')
    command_prefix: Optional[str] = Field(
        default=None,
        description='Command used to invoke migration steps. '
        'Defaults to "gh ado2gh" or "gh bbs2gh" depending on the source platform.',
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for GitHub Migration Tool."""

    github: GitHubConfig = Field(
        default_factory=GitHubConfig, description='Target GitHub instance'
    )
    ado: AdoConfig = Field(default_factory=AdoConfig, description='Azure DevOps source')
    bbs: BbsConfig = Field(
        default_factory=BbsConfig, description='Bitbucket Server source'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    script: ScriptConfig = Field(
        default_factory=ScriptConfig, description='Script generation settings'
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
            'github': {
                'api_url': os.getenv('GH_API_URL'),
                'token': os.getenv('GH_PAT'),
            },
            'ado': {
                'token': os.getenv('ADO_PAT'),
            },
            'bbs': {
                'server_url': os.getenv('BBS_SERVER_URL'),
                'username': os.getenv('BBS_USERNAME'),
                'password': os.getenv('BBS_PASSWORD'),
            },
            'migration': {
                'poll_interval_seconds': os.getenv('MIGRATION_POLL_INTERVAL'),
                'target_repo_visibility': os.getenv('TARGET_REPO_VISIBILITY'),
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

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file.

        Secrets are written as their redacted form.
        """
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.dict(exclude_none=True),
                f,
                Dumper=_RedactingDumper,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'github': {
                'api_url': 'https://api.github.com',
                'token': 'your-github-personal-access-token',
                'timeout': 30,
                'rate_limit_per_second': 10.0,
            },
            'ado': {
                'base_url': 'https://dev.azure.com',
                'token': 'your-azure-devops-personal-access-token',
            },
            'bbs': {
                'server_url': 'https://bitbucket.example.com',
                'username': 'your-bitbucket-username',
                'password': 'your-bitbucket-password',
            },
            'migration': {
                'poll_interval_seconds': 10,
                'target_repo_visibility': 'private',
                'wait': False,
            },
            'script': {
                'output': 'migrate.sh',
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )


class _RedactingDumper(yaml.SafeDumper):
    """YAML dumper that writes secrets as the redaction marker."""


_RedactingDumper.add_representer(
    SecretStr, lambda dumper, _: dumper.represent_str('***')
)


def secret_value(secret: Optional[SecretStr]) -> Optional[str]:
    """Unwrap an optional secret."""
    return secret.get_secret_value() if secret is not None else None
