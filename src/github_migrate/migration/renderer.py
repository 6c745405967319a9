"""Renders ordered migration steps as a bash script.

Output depends only on the ordered script and the command prefix, so the same
inventory, toggles and mode always produce byte-identical text.
"""

import re
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..models.inventory import ExecutionMode
from ..models.migration import SourcePlatform
from .steps import (
    DownloadLogsStep,
    MigrateRepoStep,
    OrderedScript,
    Rendezvous,
    ScriptEntry,
    Step,
)


DEFAULT_COMMAND_PREFIXES: Dict[SourcePlatform, str] = {
    SourcePlatform.ADO: 'gh ado2gh',
    SourcePlatform.BBS: 'gh bbs2gh',
}

PLATFORM_NAMES: Dict[SourcePlatform, str] = {
    SourcePlatform.ADO: 'Azure DevOps',
    SourcePlatform.BBS: 'Bitbucket Server',
}

INDENT = '    '

RUN_STEP_FUNCTION = """run_step() {
    "$@"
    local status=$?
    if [ "$status" -ne 0 ]; then
        echo "Step failed (exit code $status): $*" >&2
        exit "$status"
    fi
}"""

QUEUE_MIGRATION_FUNCTION = """queue_migration() {
    local output
    output=$("$@" 2>&1)
    local status=$?
    echo "$output" >&2
    if [ "$status" -ne 0 ]; then
        return "$status"
    fi
    echo "$output" | sed -n 's/.*(ID: \\([^)]*\\)).*/\\1/p' | tail -n 1
}"""


def quote(value: str) -> str:
    """Double-quote a shell argument."""
    return '"' + re.sub(r'(["\\$`])', r'\\\1', value) + '"'


class ScriptRenderer:
    """Serializes an ``OrderedScript`` into executable bash."""

    def __init__(self, command_prefix: Optional[str] = None):
        """Initialize the renderer.

        Args:
            command_prefix: Command that runs each step, e.g. ``gh ado2gh``.
                Defaults to the GitHub CLI extension of the source platform.
        """
        self.command_prefix = command_prefix
        self.logger = logger.bind(component='ScriptRenderer')

    def render(self, script: OrderedScript) -> str:
        """Render the script text."""
        prefix = self.command_prefix or DEFAULT_COMMAND_PREFIXES[script.platform]
        parallel = script.mode == ExecutionMode.PARALLEL
        variables = self._variable_names(script)

        lines = self._header(script, parallel)
        group = None
        pending: List[Step] = []

        def flush():
            if pending:
                lines.extend(
                    self._render_guarded(pending, prefix, variables)
                )
                pending.clear()

        for entry in script.entries:
            entry_group = self._group(entry)
            if entry_group != group:
                flush()
                lines.append('')
                if isinstance(entry, Rendezvous):
                    lines.append(f'# {entry.label}')
                else:
                    lines.append(f'# Project: {entry.project}')
                group = entry_group

            if isinstance(entry, Rendezvous):
                lines.extend(self._render_rendezvous(entry, script, prefix, variables))
            elif isinstance(entry, MigrateRepoStep):
                flush()
                lines.append(self._render_migration(entry, prefix, parallel, variables))
            elif parallel and entry.repository is not None:
                if pending and not _same_guard(pending[-1], entry):
                    flush()
                pending.append(entry)
            else:
                flush()
                lines.append(f'run_step {self._command(entry, prefix)}')
        flush()

        if parallel:
            lines.extend(
                [
                    '',
                    'echo "Total number of successful migrations: $SUCCEEDED"',
                    'echo "Total number of failed migrations: $FAILED"',
                    '',
                    'if [ "$FAILED" -ne 0 ]; then',
                    f'{INDENT}exit 1',
                    'fi',
                ]
            )

        self.logger.debug(f'Rendered {len(script.entries)} entries')
        return '\n'.join(lines) + '\n'

    def _header(self, script: OrderedScript, parallel: bool) -> List[str]:
        lines = [
            '#!/usr/bin/env bash',
            f'# Migrates {PLATFORM_NAMES[script.platform]} repositories to the '
            f'GitHub organization {script.github_org}',
            f'# Execution mode: {script.mode.value}',
            '',
            RUN_STEP_FUNCTION,
        ]
        if parallel:
            lines.extend(['', QUEUE_MIGRATION_FUNCTION, '', 'SUCCEEDED=0', 'FAILED=0'])
        return lines

    @staticmethod
    def _group(entry: ScriptEntry):
        if isinstance(entry, Rendezvous):
            return ('rendezvous', entry.batch)
        return ('project', entry.project)

    @staticmethod
    def _command(step: Step, prefix: str, extra: Optional[List[str]] = None) -> str:
        parts = [prefix, step.command]
        for flag, value in step.arguments():
            parts.append(flag if value is None else f'{flag} {quote(value)}')
        parts.extend(extra or [])
        return ' '.join(parts)

    def _render_migration(
        self,
        step: MigrateRepoStep,
        prefix: str,
        parallel: bool,
        variables: Dict[Tuple[str, str, str], str],
    ) -> str:
        if not parallel:
            return f'run_step {self._command(step, prefix, ["--wait"])}'
        variable = f'MIGRATION_ID_{variables[step.repo.key]}'
        return f'{variable}=$(queue_migration {self._command(step, prefix)})'

    def _render_rendezvous(
        self,
        rendezvous: Rendezvous,
        script: OrderedScript,
        prefix: str,
        variables: Dict[Tuple[str, str, str], str],
    ) -> List[str]:
        lines = []
        for step_id in rendezvous.waits_for:
            name = variables[script.step(step_id).repo.key]
            migration_id = f'"$MIGRATION_ID_{name}"'
            lines.extend(
                [
                    f'if [ -n {migration_id} ] && '
                    f'{prefix} wait-for-migration --migration-id {migration_id}; then',
                    f'{INDENT}MIGRATED_{name}=1',
                    f'{INDENT}SUCCEEDED=$((SUCCEEDED + 1))',
                    'else',
                    f'{INDENT}MIGRATED_{name}=0',
                    f'{INDENT}FAILED=$((FAILED + 1))',
                    'fi',
                ]
            )
        return lines

    def _render_guarded(
        self,
        steps: List[Step],
        prefix: str,
        variables: Dict[Tuple[str, str, str], str],
    ) -> List[str]:
        """Run a repository's dependent steps only if its migration allows it."""
        commands = [f'run_step {self._command(step, prefix)}' for step in steps]
        name = variables[steps[0].repository.key]
        if isinstance(steps[0], DownloadLogsStep):
            condition = f'[ -n "$MIGRATION_ID_{name}" ]'
        else:
            condition = f'[ "$MIGRATED_{name}" = "1" ]'
        return (
            [f'if {condition}; then']
            + [INDENT + command for command in commands]
            + ['fi']
        )

    @staticmethod
    def _variable_names(script: OrderedScript) -> Dict[Tuple[str, str, str], str]:
        """Stable, collision-free shell variable suffix per repository."""
        names: Dict[Tuple[str, str, str], str] = {}
        used = set()
        for step in script.steps:
            if not isinstance(step, MigrateRepoStep):
                continue
            base = re.sub(r'[^A-Za-z0-9]+', '_', step.repo.github_repo).strip('_')
            base = base.upper() or 'REPO'
            name = base
            suffix = 2
            while name in used:
                name = f'{base}_{suffix}'
                suffix += 1
            used.add(name)
            names[step.repo.key] = name
        return names


def _same_guard(previous: Step, step: Step) -> bool:
    """Whether two consecutive steps can share one guard block."""
    return previous.repository == step.repository and isinstance(
        previous, DownloadLogsStep
    ) == isinstance(step, DownloadLogsStep)
