"""Migration status poller.

Polling is an explicit state machine: ``FETCH`` queries the remote state,
``WAIT`` suspends for the poll interval, ``DONE`` is reached once the
migration is terminal. ``step()`` advances one phase so the poller can be
driven by any cooperative scheduler; ``wait()`` simply runs it to completion.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from loguru import logger

from ..api.exceptions import GitHubAPIError, GitHubRateLimitError
from ..models.migration import MigrationHandle, MigrationState


DEFAULT_POLL_INTERVAL = 10.0


class PollPhase(str, Enum):
    """Phases of the polling state machine."""

    FETCH = 'fetch'
    WAIT = 'wait'
    DONE = 'done'


@dataclass
class PollProgress:
    """Progress notification for a migration that is still pending."""

    migration_id: str
    state: Optional[MigrationState]
    attempt: int
    delay: float
    error: Optional[str] = None

    def describe(self) -> str:
        state = self.state.value if self.state else 'UNKNOWN'
        message = (
            f'Migration in progress (ID: {self.migration_id}). State: {state}. '
            f'Waiting {self.delay:g} seconds...'
        )
        if self.error:
            message += f' (status check failed: {self.error})'
        return message


ProgressCallback = Callable[[PollProgress], None]
SleepFunction = Callable[[float], Awaitable[None]]


class MigrationPoller:
    """Polls one remote migration until it reaches a terminal state.

    There is no timeout: migrations can legitimately run for hours. Cancel
    the surrounding task to stop waiting; the remote migration keeps going.
    """

    def __init__(
        self,
        api,
        migration_id: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Optional[SleepFunction] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """Initialize the poller.

        Args:
            api: Object providing ``async get_migration(id) -> MigrationHandle``
            migration_id: Remote migration id
            interval: Seconds between status checks
            sleep: Awaitable used to suspend between checks
            on_progress: Called for every check that is still pending
        """
        if interval <= 0:
            raise ValueError('Poll interval must be positive')

        self.api = api
        self.migration_id = migration_id
        self.interval = interval
        self._sleep = sleep or asyncio.sleep
        self._on_progress = on_progress

        self.phase = PollPhase.FETCH
        self.handle: Optional[MigrationHandle] = None
        self.fetches = 0
        self._next_delay = interval

        self.logger = logger.bind(component='MigrationPoller', migration_id=migration_id)

    @property
    def state(self) -> Optional[MigrationState]:
        return self.handle.state if self.handle else None

    @property
    def done(self) -> bool:
        return self.phase is PollPhase.DONE

    async def step(self) -> PollPhase:
        """Advance the state machine by one phase.

        Returns:
            The phase the poller is in afterwards
        """
        if self.phase is PollPhase.FETCH:
            await self._fetch()
        elif self.phase is PollPhase.WAIT:
            await self._sleep(self._next_delay)
            self.phase = PollPhase.FETCH
        return self.phase

    async def wait(self) -> Tuple[MigrationState, Optional[str]]:
        """Poll until the migration is terminal.

        Returns:
            Final state and, for failed migrations, the remote failure reason
        """
        try:
            while not self.done:
                await self.step()
        except asyncio.CancelledError:
            self.logger.warning(
                f'Stopped waiting for migration {self.migration_id}; '
                'the migration continues remotely'
            )
            raise

        return self.handle.state, self.handle.failure_reason

    async def _fetch(self) -> None:
        self.fetches += 1
        self._next_delay = self.interval
        error = None

        try:
            self.handle = await self.api.get_migration(self.migration_id)
        except GitHubAPIError as e:
            if not e.is_transient:
                raise
            error = str(e)
            if isinstance(e, GitHubRateLimitError):
                self._next_delay = max(self.interval, float(e.retry_after))

        if self.handle is not None and self.handle.state.is_terminal:
            self.phase = PollPhase.DONE
            return

        progress = PollProgress(
            migration_id=self.migration_id,
            state=self.state,
            attempt=self.fetches,
            delay=self._next_delay,
            error=error,
        )
        if error:
            self.logger.warning(progress.describe())
        else:
            self.logger.info(progress.describe())
        if self._on_progress:
            self._on_progress(progress)

        self.phase = PollPhase.WAIT


async def wait_for_all(
    pollers: Sequence[MigrationPoller],
) -> List[Tuple[MigrationState, Optional[str]]]:
    """Wait for several migrations concurrently.

    Results are returned in the order of ``pollers``.
    """
    return list(await asyncio.gather(*(poller.wait() for poller in pollers)))
