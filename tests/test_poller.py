"""Tests for the migration status poller."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, Mock, patch

from github_migrate.api.client import GitHubClient
from github_migrate.api.exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubRateLimitError,
)
from github_migrate.migration.poller import (
    MigrationPoller,
    PollPhase,
    PollProgress,
    wait_for_all,
)
from github_migrate.config.config import GitHubConfig
from github_migrate.models.migration import MigrationHandle, MigrationState


def _handle(state, failure_reason=None, migration_id='RM_1'):
    return MigrationHandle(
        id=migration_id,
        state=state,
        failure_reason=failure_reason,
        repository_name='core-api',
    )


class FakeAPI:
    """Answers status checks from a scripted sequence."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def get_migration(self, migration_id):
        self.calls.append(migration_id)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class TestPollProgress:
    """Test progress messages."""

    def test_describe(self):
        """Test progress description."""
        progress = PollProgress(
            migration_id='RM_1', state=MigrationState.QUEUED, attempt=1, delay=10
        )

        assert progress.describe() == (
            'Migration in progress (ID: RM_1). State: QUEUED. Waiting 10 seconds...'
        )

    def test_describe_unknown_state(self):
        """Test progress description before any successful check."""
        progress = PollProgress(
            migration_id='RM_1', state=None, attempt=1, delay=10, error='boom'
        )

        assert 'State: UNKNOWN' in progress.describe()
        assert 'boom' in progress.describe()


class TestMigrationPoller:
    """Test the polling state machine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sleep = AsyncMock()

    def test_interval_must_be_positive(self):
        """Test interval validation."""
        with pytest.raises(ValueError):
            MigrationPoller(FakeAPI([]), 'RM_1', interval=0)

    @pytest.mark.asyncio
    async def test_polls_until_succeeded(self):
        """Test that every pending state leads to another check."""
        api = FakeAPI(
            [
                _handle(MigrationState.QUEUED),
                _handle(MigrationState.QUEUED),
                _handle(MigrationState.IN_PROGRESS),
                _handle(MigrationState.SUCCEEDED),
            ]
        )
        poller = MigrationPoller(api, 'RM_1', interval=10, sleep=self.sleep)

        result = await poller.wait()

        assert result == (MigrationState.SUCCEEDED, None)
        assert poller.fetches == 4
        assert api.calls == ['RM_1'] * 4
        assert self.sleep.await_count == 3
        self.sleep.assert_awaited_with(10)
        assert poller.done

    @pytest.mark.asyncio
    async def test_pending_validation_is_pending(self):
        """Test that validation is not treated as terminal."""
        api = FakeAPI(
            [
                _handle(MigrationState.PENDING_VALIDATION),
                _handle(MigrationState.SUCCEEDED),
            ]
        )
        poller = MigrationPoller(api, 'RM_1', interval=1, sleep=self.sleep)

        assert (await poller.wait())[0] is MigrationState.SUCCEEDED
        assert poller.fetches == 2

    @pytest.mark.asyncio
    async def test_failure_reason_is_returned(self):
        """Test that failed migrations surface the remote reason."""
        api = FakeAPI(
            [
                _handle(MigrationState.IN_PROGRESS),
                _handle(MigrationState.FAILED, 'Git source migration failed'),
            ]
        )
        poller = MigrationPoller(api, 'RM_1', interval=1, sleep=self.sleep)

        result = await poller.wait()

        assert result == (MigrationState.FAILED, 'Git source migration failed')

    @pytest.mark.asyncio
    async def test_failed_validation_is_terminal(self):
        """Test that failed validation ends polling."""
        api = FakeAPI([_handle(MigrationState.FAILED_VALIDATION, 'Bad token')])
        poller = MigrationPoller(api, 'RM_1', interval=1, sleep=self.sleep)

        result = await poller.wait()

        assert result == (MigrationState.FAILED_VALIDATION, 'Bad token')
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_step_advances_one_phase(self):
        """Test driving the state machine manually."""
        api = FakeAPI(
            [_handle(MigrationState.QUEUED), _handle(MigrationState.SUCCEEDED)]
        )
        poller = MigrationPoller(api, 'RM_1', interval=5, sleep=self.sleep)

        assert poller.phase is PollPhase.FETCH
        assert await poller.step() is PollPhase.WAIT
        assert poller.state is MigrationState.QUEUED
        assert await poller.step() is PollPhase.FETCH
        self.sleep.assert_awaited_once_with(5)
        assert await poller.step() is PollPhase.DONE
        assert poller.state is MigrationState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_progress_callback(self):
        """Test progress notifications for pending checks."""
        on_progress = Mock()
        api = FakeAPI(
            [_handle(MigrationState.QUEUED), _handle(MigrationState.SUCCEEDED)]
        )
        poller = MigrationPoller(
            api, 'RM_1', interval=10, sleep=self.sleep, on_progress=on_progress
        )

        await poller.wait()

        on_progress.assert_called_once()
        progress = on_progress.call_args.args[0]
        assert progress.state is MigrationState.QUEUED
        assert progress.attempt == 1
        assert progress.delay == 10

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        """Test that transient status check failures count as pending."""
        on_progress = Mock()
        api = FakeAPI(
            [
                GitHubAPIError('Bad gateway', status_code=502),
                GitHubAPIError('Network error: reset'),
                _handle(MigrationState.SUCCEEDED),
            ]
        )
        poller = MigrationPoller(
            api, 'RM_1', interval=10, sleep=self.sleep, on_progress=on_progress
        )

        result = await poller.wait()

        assert result == (MigrationState.SUCCEEDED, None)
        assert poller.fetches == 3
        assert on_progress.call_count == 2
        assert on_progress.call_args_list[0].args[0].error == 'Bad gateway'

    @pytest.mark.asyncio
    async def test_rate_limit_delays_next_check(self):
        """Test that rate limits stretch the wait to the advertised delay."""
        api = FakeAPI(
            [
                GitHubRateLimitError('Rate limit exceeded', retry_after=60, status_code=429),
                _handle(MigrationState.QUEUED),
                _handle(MigrationState.SUCCEEDED),
            ]
        )
        poller = MigrationPoller(api, 'RM_1', interval=10, sleep=self.sleep)

        await poller.wait()

        assert [call.args[0] for call in self.sleep.await_args_list] == [60, 10]

    @pytest.mark.asyncio
    async def test_permanent_error_propagates(self):
        """Test that permanent failures stop polling."""
        api = FakeAPI([GitHubAuthenticationError('Bad credentials', status_code=401)])
        poller = MigrationPoller(api, 'RM_1', interval=10, sleep=self.sleep)

        with pytest.raises(GitHubAuthenticationError):
            await poller.wait()

        assert poller.fetches == 1

    @pytest.mark.asyncio
    async def test_cancellation_stops_waiting(self):
        """Test that cancelling the task stops polling."""
        blocked = asyncio.Event()

        async def sleep_forever(delay):
            blocked.set()
            await asyncio.Event().wait()

        api = FakeAPI([_handle(MigrationState.IN_PROGRESS)])
        poller = MigrationPoller(api, 'RM_1', interval=10, sleep=sleep_forever)

        task = asyncio.ensure_future(poller.wait())
        await blocked.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert poller.fetches == 1
        assert not poller.done


class TestWaitForAll:
    """Test concurrent waiting."""

    @pytest.mark.asyncio
    async def test_results_follow_poller_order(self):
        """Test that results keep the order of the pollers."""
        sleep = AsyncMock()
        slow = MigrationPoller(
            FakeAPI(
                [
                    _handle(MigrationState.IN_PROGRESS, migration_id='RM_1'),
                    _handle(MigrationState.FAILED, 'boom', migration_id='RM_1'),
                ]
            ),
            'RM_1',
            interval=1,
            sleep=sleep,
        )
        fast = MigrationPoller(
            FakeAPI([_handle(MigrationState.SUCCEEDED, migration_id='RM_2')]),
            'RM_2',
            interval=1,
            sleep=sleep,
        )

        results = await wait_for_all([slow, fast])

        assert results == [
            (MigrationState.FAILED, 'boom'),
            (MigrationState.SUCCEEDED, None),
        ]


class TestPollingThroughClient:
    """Test polling against the real GitHub client."""

    @pytest.mark.asyncio
    async def test_timeout_counts_as_pending(self):
        """Test that a status check timing out does not end the wait."""
        client = GitHubClient(GitHubConfig(token='test-token', rate_limit_per_second=100))
        session = MagicMock()
        session.post.return_value.__aenter__.side_effect = asyncio.TimeoutError()
        session_class = MagicMock()
        session_class.return_value.__aenter__.return_value = session
        on_progress = Mock()

        poller = MigrationPoller(
            client, 'RM_1', interval=10, sleep=AsyncMock(), on_progress=on_progress
        )

        with patch('github_migrate.api.client.aiohttp.ClientSession', session_class):
            phase = await poller.step()

        assert phase is PollPhase.WAIT
        assert poller.state is None
        assert 'Network error' in on_progress.call_args.args[0].error
