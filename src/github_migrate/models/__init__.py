"""Data models for inventories and repository migrations."""

from .inventory import (
    ExecutionMode,
    FeatureToggles,
    Inventory,
    Organization,
    Project,
    Repository,
    RepositoryRef,
    Team,
    TeamBinding,
)
from .migration import (
    Credentials,
    LaunchOptions,
    MigrationHandle,
    MigrationSource,
    MigrationState,
    MigrationTarget,
    SourcePlatform,
)

__all__ = [
    'ExecutionMode',
    'FeatureToggles',
    'Inventory',
    'Organization',
    'Project',
    'Repository',
    'RepositoryRef',
    'Team',
    'TeamBinding',
    'Credentials',
    'LaunchOptions',
    'MigrationHandle',
    'MigrationSource',
    'MigrationState',
    'MigrationTarget',
    'SourcePlatform',
]
