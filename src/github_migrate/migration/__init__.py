"""Migration lifecycle and script generation."""

from .exceptions import (
    AlreadyExistsError,
    ConfigurationError,
    EmptyInventoryError,
    MigrationError,
    MigrationFailedError,
    OrderingError,
    RemoteSubmissionError,
)
from .launcher import MigrationLauncher
from .poller import MigrationPoller, PollPhase, PollProgress, wait_for_all
from .steps import OrderedScript, Rendezvous, Step, StepKind
from .ordering import OrderingEngine, build_script
from .renderer import ScriptRenderer
from .orchestrator import MigrationOrchestrator, MigrationOutcome
from .engine import MigrationEngine

__all__ = [
    'AlreadyExistsError',
    'ConfigurationError',
    'EmptyInventoryError',
    'MigrationError',
    'MigrationFailedError',
    'OrderingError',
    'RemoteSubmissionError',
    'MigrationLauncher',
    'MigrationPoller',
    'PollPhase',
    'PollProgress',
    'wait_for_all',
    'OrderedScript',
    'Rendezvous',
    'Step',
    'StepKind',
    'OrderingEngine',
    'build_script',
    'ScriptRenderer',
    'MigrationOrchestrator',
    'MigrationOutcome',
    'MigrationEngine',
]
