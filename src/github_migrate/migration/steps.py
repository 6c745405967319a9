"""Step model for generated migration scripts.

Each step kind is its own dataclass carrying the data it needs to render as a
command and the ids of the steps it depends on. Ordering keys and batch
numbers are assigned by the ordering engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple, Union

from ..models.inventory import ExecutionMode, RepositoryRef
from ..models.migration import SourcePlatform


Argument = Tuple[str, Optional[str]]


class StepKind(str, Enum):
    """Kinds of generated steps."""

    CREATE_TEAM = 'create-team'
    LINK_IDP_GROUP = 'link-idp-group'
    MIGRATE_REPO = 'migrate-repo'
    ADD_TEAM_TO_REPO = 'add-team-to-repo'
    LOCK_SOURCE_REPO = 'lock-source-repo'
    DISABLE_SOURCE_REPO = 'disable-source-repo'
    INTEGRATE_BOARDS = 'integrate-boards'
    REWIRE_PIPELINE = 'rewire-pipeline'
    DOWNLOAD_LOGS = 'download-logs'

    @property
    def priority(self) -> int:
        """Rank of the kind among the steps acting on one repository."""
        return KIND_PRIORITY[self]


KIND_PRIORITY: Dict[StepKind, int] = {
    StepKind.CREATE_TEAM: 0,
    StepKind.LINK_IDP_GROUP: 1,
    StepKind.MIGRATE_REPO: 2,
    StepKind.ADD_TEAM_TO_REPO: 3,
    StepKind.LOCK_SOURCE_REPO: 4,
    StepKind.DISABLE_SOURCE_REPO: 4,
    StepKind.INTEGRATE_BOARDS: 4,
    StepKind.REWIRE_PIPELINE: 4,
    StepKind.DOWNLOAD_LOGS: 5,
}


@dataclass(kw_only=True)
class Step(ABC):
    """Base class of all generated steps."""

    kind: ClassVar[StepKind]
    command: ClassVar[str]

    project: str
    depends_on: List[str] = field(default_factory=list)
    ordering_key: int = 0
    batch: Optional[int] = None

    @property
    @abstractmethod
    def target(self) -> str:
        """Name of the entity the step acts on."""

    @property
    def step_id(self) -> str:
        return f'{self.kind.value}:{self.target}'

    @property
    @abstractmethod
    def label(self) -> str:
        """Human readable description used in script output."""

    @property
    def repository(self) -> Optional[RepositoryRef]:
        """Repository this step acts on, if any."""
        return None

    @abstractmethod
    def arguments(self) -> List[Argument]:
        """Command line flags of the rendered command."""

    def content(self) -> Tuple:
        """Everything that identifies the step, without ordering annotations."""
        return (self.step_id, tuple(self.arguments()), tuple(sorted(self.depends_on)))


def _repo_target(repo: RepositoryRef) -> str:
    return f'{repo.org}/{repo.project}/{repo.repo}'


def _ado_repo_arguments(repo: RepositoryRef) -> List[Argument]:
    return [
        ('--ado-org', repo.org),
        ('--ado-team-project', repo.project),
        ('--ado-repo', repo.repo),
    ]


@dataclass
class CreateTeamStep(Step):
    kind: ClassVar[StepKind] = StepKind.CREATE_TEAM
    command: ClassVar[str] = 'create-team'

    github_org: str
    team: str

    @property
    def target(self) -> str:
        return self.team

    @property
    def label(self) -> str:
        return f'Create team {self.team}'

    def arguments(self) -> List[Argument]:
        return [('--github-org', self.github_org), ('--team-name', self.team)]


@dataclass
class LinkIdpGroupStep(Step):
    """Links an existing team to an identity provider group.

    Rendered through ``create-team``, which only links when the team exists.
    """

    kind: ClassVar[StepKind] = StepKind.LINK_IDP_GROUP
    command: ClassVar[str] = 'create-team'

    github_org: str
    team: str
    idp_group: str

    @property
    def target(self) -> str:
        return self.team

    @property
    def label(self) -> str:
        return f'Link team {self.team} to IdP group {self.idp_group}'

    def arguments(self) -> List[Argument]:
        return [
            ('--github-org', self.github_org),
            ('--team-name', self.team),
            ('--idp-group', self.idp_group),
        ]


@dataclass
class MigrateRepoStep(Step):
    kind: ClassVar[StepKind] = StepKind.MIGRATE_REPO
    command: ClassVar[str] = 'migrate-repo'

    github_org: str
    repo: RepositoryRef
    platform: SourcePlatform = SourcePlatform.ADO

    @property
    def target(self) -> str:
        return _repo_target(self.repo)

    @property
    def label(self) -> str:
        return f'Migrate {self.repo.repo} to {self.github_org}/{self.repo.github_repo}'

    @property
    def repository(self) -> Optional[RepositoryRef]:
        return self.repo

    def arguments(self) -> List[Argument]:
        if self.platform == SourcePlatform.BBS:
            source = [
                ('--bbs-server-url', self.repo.server_url),
                ('--bbs-project', self.repo.project),
                ('--bbs-repo', self.repo.repo),
            ]
        else:
            source = _ado_repo_arguments(self.repo)
        return source + [
            ('--github-org', self.github_org),
            ('--github-repo', self.repo.github_repo),
        ]


@dataclass
class AddTeamToRepoStep(Step):
    kind: ClassVar[StepKind] = StepKind.ADD_TEAM_TO_REPO
    command: ClassVar[str] = 'add-team-to-repo'

    github_org: str
    repo: RepositoryRef
    team: str
    role: str

    @property
    def target(self) -> str:
        return f'{_repo_target(self.repo)}:{self.team}'

    @property
    def label(self) -> str:
        return f'Grant {self.team} {self.role} on {self.repo.github_repo}'

    @property
    def repository(self) -> Optional[RepositoryRef]:
        return self.repo

    def arguments(self) -> List[Argument]:
        return [
            ('--github-org', self.github_org),
            ('--github-repo', self.repo.github_repo),
            ('--team', self.team),
            ('--role', self.role),
        ]


@dataclass
class LockSourceRepoStep(Step):
    kind: ClassVar[StepKind] = StepKind.LOCK_SOURCE_REPO
    command: ClassVar[str] = 'lock-ado-repo'

    repo: RepositoryRef

    @property
    def target(self) -> str:
        return _repo_target(self.repo)

    @property
    def label(self) -> str:
        return f'Lock source repository {self.repo.repo}'

    @property
    def repository(self) -> Optional[RepositoryRef]:
        return self.repo

    def arguments(self) -> List[Argument]:
        return _ado_repo_arguments(self.repo)


@dataclass
class DisableSourceRepoStep(Step):
    kind: ClassVar[StepKind] = StepKind.DISABLE_SOURCE_REPO
    command: ClassVar[str] = 'disable-ado-repo'

    repo: RepositoryRef

    @property
    def target(self) -> str:
        return _repo_target(self.repo)

    @property
    def label(self) -> str:
        return f'Disable source repository {self.repo.repo}'

    @property
    def repository(self) -> Optional[RepositoryRef]:
        return self.repo

    def arguments(self) -> List[Argument]:
        return _ado_repo_arguments(self.repo)


@dataclass
class IntegrateBoardsStep(Step):
    kind: ClassVar[StepKind] = StepKind.INTEGRATE_BOARDS
    command: ClassVar[str] = 'integrate-boards'

    github_org: str
    repo: RepositoryRef

    @property
    def target(self) -> str:
        return _repo_target(self.repo)

    @property
    def label(self) -> str:
        return f'Integrate Azure Boards with {self.repo.github_repo}'

    @property
    def repository(self) -> Optional[RepositoryRef]:
        return self.repo

    def arguments(self) -> List[Argument]:
        return [
            ('--ado-org', self.repo.org),
            ('--ado-team-project', self.repo.project),
            ('--github-org', self.github_org),
            ('--github-repo', self.repo.github_repo),
        ]


@dataclass
class RewirePipelineStep(Step):
    kind: ClassVar[StepKind] = StepKind.REWIRE_PIPELINE
    command: ClassVar[str] = 'rewire-pipeline'

    github_org: str
    repo: RepositoryRef
    pipeline: str
    service_connection_id: str

    @property
    def target(self) -> str:
        return f'{_repo_target(self.repo)}:{self.pipeline}'

    @property
    def label(self) -> str:
        return f'Rewire pipeline {self.pipeline} to {self.repo.github_repo}'

    @property
    def repository(self) -> Optional[RepositoryRef]:
        return self.repo

    def arguments(self) -> List[Argument]:
        return [
            ('--ado-org', self.repo.org),
            ('--ado-team-project', self.repo.project),
            ('--ado-pipeline', self.pipeline),
            ('--github-org', self.github_org),
            ('--github-repo', self.repo.github_repo),
            ('--service-connection-id', self.service_connection_id),
        ]


@dataclass
class DownloadLogsStep(Step):
    kind: ClassVar[StepKind] = StepKind.DOWNLOAD_LOGS
    command: ClassVar[str] = 'download-logs'

    github_org: str
    repo: RepositoryRef

    @property
    def target(self) -> str:
        return _repo_target(self.repo)

    @property
    def label(self) -> str:
        return f'Download migration logs for {self.repo.github_repo}'

    @property
    def repository(self) -> Optional[RepositoryRef]:
        return self.repo

    def arguments(self) -> List[Argument]:
        return [
            ('--github-org', self.github_org),
            ('--github-repo', self.repo.github_repo),
        ]


@dataclass
class Rendezvous:
    """Wait for every migration of a parallel batch before dependents run."""

    batch: int
    waits_for: List[str]
    ordering_key: int = 0

    @property
    def label(self) -> str:
        return f'Wait for {len(self.waits_for)} migration(s) in batch {self.batch}'


ScriptEntry = Union[Step, Rendezvous]


@dataclass
class OrderedScript:
    """Ordered steps and rendezvous markers of one generation pass."""

    mode: ExecutionMode
    platform: SourcePlatform
    github_org: str
    entries: List[ScriptEntry] = field(default_factory=list)

    @property
    def steps(self) -> List[Step]:
        return [entry for entry in self.entries if isinstance(entry, Step)]

    @property
    def rendezvous(self) -> List[Rendezvous]:
        return [entry for entry in self.entries if isinstance(entry, Rendezvous)]

    def step(self, step_id: str) -> Step:
        for entry in self.steps:
            if entry.step_id == step_id:
                return entry
        raise KeyError(step_id)
