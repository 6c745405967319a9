"""Repository migration models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, validator

from ..config.config import VALID_VISIBILITIES


REDACTED = '***'


class MigrationState(str, Enum):
    """States reported by the remote migration service."""

    QUEUED = 'QUEUED'
    PENDING_VALIDATION = 'PENDING_VALIDATION'
    IN_PROGRESS = 'IN_PROGRESS'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'
    FAILED_VALIDATION = 'FAILED_VALIDATION'

    @property
    def is_pending(self) -> bool:
        return self in (
            MigrationState.QUEUED,
            MigrationState.PENDING_VALIDATION,
            MigrationState.IN_PROGRESS,
        )

    @property
    def is_failed(self) -> bool:
        return self in (MigrationState.FAILED, MigrationState.FAILED_VALIDATION)

    @property
    def is_succeeded(self) -> bool:
        return self is MigrationState.SUCCEEDED

    @property
    def is_terminal(self) -> bool:
        return not self.is_pending

    @classmethod
    def parse(cls, value: str) -> 'MigrationState':
        """Parse a state string returned by the API.

        Raises:
            ValueError: If the value is not a known state
        """
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f'Unknown migration state: {value!r}')


class SourcePlatform(str, Enum):
    """Source control platforms that can be migrated from."""

    ADO = 'ado'
    BBS = 'bbs'


class MigrationHandle(BaseModel):
    """Reference to one in-flight remote repository migration."""

    id: str = Field(..., description='Remote migration ID')
    state: MigrationState = Field(..., description='Last observed state')
    failure_reason: Optional[str] = Field(
        default=None, description='Failure reason, only set when failed'
    )
    repository_name: Optional[str] = Field(
        default=None, description='Target repository name'
    )
    migration_log_url: Optional[str] = Field(
        default=None, description='Migration log download URL'
    )


class MigrationSource(BaseModel):
    """Where a repository is migrated from."""

    platform: SourcePlatform = Field(..., description='Source platform')
    repository_url: str = Field(..., description='Source repository URL')
    git_archive_url: Optional[str] = Field(
        default=None, description='Pre-uploaded git archive URL (BBS)'
    )
    metadata_archive_url: Optional[str] = Field(
        default=None, description='Pre-uploaded metadata archive URL (BBS)'
    )

    @validator('git_archive_url', always=True)
    def validate_archive(cls, v, values):
        """Bitbucket Server migrations run from uploaded archives."""
        if values.get('platform') == SourcePlatform.BBS and not v:
            raise ValueError('git_archive_url is required for Bitbucket Server')
        return v

    @classmethod
    def for_ado(
        cls,
        org: str,
        team_project: str,
        repo: str,
        base_url: str = 'https://dev.azure.com',
    ) -> 'MigrationSource':
        """Build the source for an Azure DevOps repository."""
        url = f'{base_url.rstrip("/")}/{org}/{team_project}/_git/{repo}'
        return cls(platform=SourcePlatform.ADO, repository_url=url.replace(' ', '%20'))


class MigrationTarget(BaseModel):
    """Where a repository is migrated to."""

    github_org: str = Field(..., description='Target GitHub organization')
    github_repo: str = Field(..., description='Target repository name')
    visibility: str = Field(default='private', description='Repository visibility')

    @validator('visibility')
    def validate_visibility(cls, v):
        if v.lower() not in VALID_VISIBILITIES:
            raise ValueError(f'Visibility must be one of: {list(VALID_VISIBILITIES)}')
        return v.lower()

    @property
    def full_name(self) -> str:
        return f'{self.github_org}/{self.github_repo}'


class Credentials(BaseModel):
    """Secrets needed to run a migration."""

    github_token: SecretStr = Field(..., description='Target GitHub PAT')
    source_token: Optional[SecretStr] = Field(
        default=None, description='Source platform PAT'
    )

    def describe(self) -> str:
        """Loggable description that never includes secret values."""
        source = REDACTED if self.source_token is not None else 'none'
        return f'github token: {REDACTED}, source token: {source}'


class LaunchOptions(BaseModel):
    """Options forwarded to the remote migration request."""

    skip_releases: bool = Field(default=False, description='Skip release migration')
    lock_source: bool = Field(
        default=False, description='Lock the source repository during migration'
    )
