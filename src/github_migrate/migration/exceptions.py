"""Errors raised by migration orchestration."""

from typing import Optional


class MigrationError(Exception):
    """Base exception for migration orchestration errors."""

    pass


class ConfigurationError(MigrationError):
    """Invalid toggle, mode or inventory combination.

    Raised before any remote call is made; retrying will not help.
    """

    pass


class EmptyInventoryError(ConfigurationError):
    """The inventory contains no repositories."""

    pass


class OrderingError(MigrationError):
    """A generated step would run before one of its prerequisites."""

    pass


class AlreadyExistsError(MigrationError):
    """The target repository already exists."""

    def __init__(self, github_org: str, github_repo: str):
        super().__init__(f'A repository called {github_org}/{github_repo} already exists')
        self.github_org = github_org
        self.github_repo = github_repo


class RemoteSubmissionError(MigrationError):
    """The migration service rejected a migration request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MigrationFailedError(MigrationError):
    """A migration reached a failed terminal state."""

    def __init__(self, migration_id: str, failure_reason: Optional[str] = None):
        super().__init__(failure_reason or f'Migration {migration_id} failed')
        self.migration_id = migration_id
        self.failure_reason = failure_reason
