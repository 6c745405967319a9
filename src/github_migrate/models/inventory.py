"""Inventory and feature toggle models for script generation."""

import csv
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, validator

from .migration import SourcePlatform


TEAM_ROLES = ('pull', 'triage', 'push', 'maintain', 'admin')

TOGGLE_NAMES = (
    'create_teams',
    'link_idp_groups',
    'lock_source_repos',
    'disable_source_repos',
    'integrate_boards',
    'rewire_pipelines',
    'download_migration_logs',
)


class ExecutionMode(str, Enum):
    """How generated steps are executed."""

    SEQUENTIAL = 'sequential'
    PARALLEL = 'parallel'


class FeatureToggles(BaseModel):
    """Switches for the optional step kinds of a generated script."""

    create_teams: bool = Field(default=False, description='Create GitHub teams')
    link_idp_groups: bool = Field(
        default=False, description='Link created teams to identity provider groups'
    )
    lock_source_repos: bool = Field(
        default=False, description='Lock source repositories after migration'
    )
    disable_source_repos: bool = Field(
        default=False, description='Disable source repositories after migration'
    )
    integrate_boards: bool = Field(
        default=False, description='Integrate Azure Boards with migrated repositories'
    )
    rewire_pipelines: bool = Field(
        default=False, description='Rewire Azure Pipelines to migrated repositories'
    )
    download_migration_logs: bool = Field(
        default=False, description='Download migration logs'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True

    @classmethod
    def all_enabled(cls) -> 'FeatureToggles':
        """Toggles with every optional step enabled."""
        return cls(**{name: True for name in TOGGLE_NAMES})

    def enabled(self) -> List[str]:
        """Names of the enabled toggles, in declaration order."""
        return [name for name in TOGGLE_NAMES if getattr(self, name)]


class Team(BaseModel):
    """GitHub team declared in the inventory."""

    name: str = Field(..., description='Team name')
    idp_group: Optional[str] = Field(
        default=None, description='Identity provider group (defaults to team name)'
    )

    @property
    def idp_group_name(self) -> str:
        return self.idp_group or self.name


class TeamBinding(BaseModel):
    """Grant of a team role on a migrated repository."""

    team: str = Field(..., description='Team name')
    role: str = Field(default='maintain', description='Repository role')

    @validator('role')
    def validate_role(cls, v):
        if v.lower() not in TEAM_ROLES:
            raise ValueError(f'Role must be one of: {list(TEAM_ROLES)}')
        return v.lower()


class Repository(BaseModel):
    """Source repository to migrate."""

    name: str = Field(..., description='Source repository name')
    github_repo: Optional[str] = Field(
        default=None, description='Target repository name'
    )
    teams: List[TeamBinding] = Field(
        default_factory=list, description='Team role bindings'
    )
    pipelines: List[str] = Field(
        default_factory=list, description='Build pipelines to rewire'
    )


class Project(BaseModel):
    """Team project (ADO) or project (BBS) grouping repositories."""

    name: str = Field(..., description='Project name or key')
    repositories: List[Repository] = Field(
        default_factory=list, description='Repositories in this project'
    )


class Organization(BaseModel):
    """Source organization (ADO) or server (BBS)."""

    name: str = Field(..., description='Organization name')
    server_url: Optional[str] = Field(
        default=None, description='Bitbucket Server URL'
    )
    service_connection_id: Optional[str] = Field(
        default=None, description='GitHub service connection used by pipelines'
    )
    projects: List[Project] = Field(
        default_factory=list, description='Projects in this organization'
    )


class RepositoryRef(BaseModel):
    """Fully qualified reference to one inventory repository."""

    org: str
    project: str
    repo: str
    github_repo: str
    server_url: Optional[str] = None

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.org, self.project, self.repo)


def default_github_repo_name(project: str, repo: str) -> str:
    """Target repository name used when the inventory does not set one."""
    return f'{project}-{repo}'.replace(' ', '-')


class Inventory(BaseModel):
    """Everything a generated script acts on."""

    platform: SourcePlatform = Field(
        default=SourcePlatform.ADO, description='Source platform'
    )
    github_org: str = Field(..., description='Target GitHub organization')
    organizations: List[Organization] = Field(
        default_factory=list, description='Source organizations'
    )
    teams: List[Team] = Field(
        default_factory=list, description='Team declarations (optional)'
    )

    @classmethod
    def from_file(cls, path: str, **overrides) -> 'Inventory':
        """Load an inventory from a YAML file."""
        inventory_file = Path(path)
        if not inventory_file.exists():
            raise FileNotFoundError(f'Inventory file not found: {path}')

        with open(inventory_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)

    @classmethod
    def from_repo_list(cls, path: str, github_org: str) -> 'Inventory':
        """Load an Azure DevOps inventory from a repo list CSV.

        The CSV needs ``org``, ``teamproject`` and ``repo`` columns; rows keep
        their order and are grouped by organization and project.
        """
        organizations: Dict[str, Dict[str, List[Repository]]] = {}

        with open(path, 'r', encoding='utf-8', newline='') as f:
            reader = csv.DictReader(f)
            missing = {'org', 'teamproject', 'repo'} - set(reader.fieldnames or [])
            if missing:
                raise ValueError(
                    f'Repo list {path} is missing columns: {sorted(missing)}'
                )
            for row in reader:
                projects = organizations.setdefault(row['org'].strip(), {})
                repos = projects.setdefault(row['teamproject'].strip(), [])
                repos.append(Repository(name=row['repo'].strip()))

        return cls(
            platform=SourcePlatform.ADO,
            github_org=github_org,
            organizations=[
                Organization(
                    name=org,
                    projects=[
                        Project(name=project, repositories=repos)
                        for project, repos in projects.items()
                    ],
                )
                for org, projects in organizations.items()
            ],
        )

    def iter_repositories(self) -> Iterator[Tuple[Organization, Project, Repository]]:
        """Yield repositories in declaration order."""
        for org in self.organizations:
            for project in org.projects:
                for repo in project.repositories:
                    yield org, project, repo

    def repository_count(self) -> int:
        return sum(1 for _ in self.iter_repositories())

    def ref(
        self, org: Organization, project: Project, repo: Repository
    ) -> RepositoryRef:
        """Resolve the reference used by generated steps."""
        return RepositoryRef(
            org=org.name,
            project=project.name,
            repo=repo.name,
            github_repo=repo.github_repo
            or default_github_repo_name(project.name, repo.name),
            server_url=org.server_url,
        )

    def team(self, name: str) -> Team:
        """Find a declared team, or the implicit one bindings refer to."""
        for team in self.teams:
            if team.name == name:
                return team
        return Team(name=name)
