"""Main CLI entry point for GitHub Migration Tool."""

import sys
import asyncio
from typing import Optional, Tuple
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.markup import escape

from ..config.config import Config
from ..migration.engine import MigrationEngine
from ..migration.exceptions import MigrationError, MigrationFailedError
from ..models.inventory import FeatureToggles, Inventory
from ..utils.logging import SecretRedactor, setup_logging

console = Console()


@click.group()
@click.version_option(version='0.1.0', prog_name='github-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """GitHub Migration Tool - Migrate Azure DevOps and Bitbucket Server repositories to GitHub."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose
    ctx.obj['redactor'] = SecretRedactor()

    # Basic logging until the configuration is loaded
    setup_logging('DEBUG' if verbose else 'INFO', redactor=ctx.obj['redactor'])


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]GitHub Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your GitHub and source details[/yellow]'
        )

    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.option('--github-pat', help='GitHub personal access token')
@click.pass_context
def validate(ctx: click.Context, github_pat: Optional[str]) -> None:
    """Validate configuration and GitHub connectivity."""
    console.print(
        Panel.fit(
            '[bold cyan]GitHub Migration Tool[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)
        MigrationEngine(
            config, github_pat=github_pat, redactor=ctx.obj['redactor']
        ).test_connectivity()

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        _fail(ctx, 'Validation failed', e)


@cli.command('migrate-repo')
@click.option('--ado-org', required=True, help='Azure DevOps organization')
@click.option('--ado-team-project', required=True, help='Azure DevOps team project')
@click.option('--ado-repo', required=True, help='Azure DevOps repository')
@click.option('--github-org', required=True, help='Target GitHub organization')
@click.option('--github-repo', required=True, help='Target GitHub repository')
@click.option(
    '--target-repo-visibility',
    type=click.Choice(['public', 'private', 'internal'], case_sensitive=False),
    help='Defaults to private',
)
@click.option(
    '--wait',
    is_flag=True,
    help='Synchronously waits for the repo migration to finish.',
)
@click.option('--ado-pat', help='Azure DevOps personal access token')
@click.option('--github-pat', help='GitHub personal access token')
@click.option('--verbose', is_flag=True, help='Display more information to the console.')
@click.pass_context
def migrate_repo(
    ctx: click.Context,
    ado_org: str,
    ado_team_project: str,
    ado_repo: str,
    github_org: str,
    github_repo: str,
    target_repo_visibility: Optional[str],
    wait: bool,
    ado_pat: Optional[str],
    github_pat: Optional[str],
    verbose: bool,
) -> None:
    """Invoke the GitHub APIs to migrate the repo and all PR data."""
    if verbose:
        ctx.obj['verbose'] = True

    console.print(
        Panel.fit(
            '[bold blue]GitHub Migration Tool[/bold blue]\nMigrating Repo...',
            border_style='blue',
        )
    )

    _print_settings(
        [
            ('ADO ORG', ado_org),
            ('ADO TEAM PROJECT', ado_team_project),
            ('ADO REPO', ado_repo),
            ('GITHUB ORG', github_org),
            ('GITHUB REPO', github_repo),
            ('TARGET REPO VISIBILITY', target_repo_visibility),
            ('WAIT', 'true' if wait else None),
            ('ADO PAT', '***' if ado_pat else None),
            ('GITHUB PAT', '***' if github_pat else None),
        ]
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(
            config, github_pat=github_pat, redactor=ctx.obj['redactor']
        )
        outcome = asyncio.run(
            engine.migrate_ado_repo(
                ado_org,
                ado_team_project,
                ado_repo,
                github_org,
                github_repo,
                target_repo_visibility=target_repo_visibility,
                wait=wait or None,
                ado_pat=ado_pat,
            )
        )

        if outcome.skipped:
            console.print(
                f'[yellow]![/yellow] {github_org}/{github_repo} already exists, '
                'no operation was performed'
            )
        elif outcome.succeeded:
            console.print(
                f'[green]✓[/green] Migration completed (ID: {outcome.migration_id})! '
                f'State: {outcome.state.value}'
            )
        else:
            console.print(
                f'[green]✓[/green] Migration queued (ID: {outcome.migration_id}). '
                f'State: {outcome.state.value}'
            )

    except Exception as e:
        _fail(ctx, 'Migration failed', e)


@cli.command('wait-for-migration')
@click.option(
    '--migration-id',
    'migration_ids',
    required=True,
    multiple=True,
    help='Migration to wait for (repeat to wait for several)',
)
@click.option('--github-pat', help='GitHub personal access token')
@click.pass_context
def wait_for_migration(
    ctx: click.Context, migration_ids: Tuple[str, ...], github_pat: Optional[str]
) -> None:
    """Wait for migrations to reach a terminal state."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(
            config, github_pat=github_pat, redactor=ctx.obj['redactor']
        )
        outcomes = asyncio.run(engine.wait_for_migrations(list(migration_ids)))

        table = Table(title='Migrations')
        table.add_column('Migration ID', style='cyan')
        table.add_column('Repository', style='blue')
        table.add_column('State', style='green')
        table.add_column('Migration Log')
        for outcome in outcomes:
            table.add_row(
                outcome.migration_id,
                outcome.repository or '-',
                outcome.state.value,
                outcome.migration_log_url or '-',
            )
        console.print(table)

    except Exception as e:
        _fail(ctx, 'Migration failed', e)


@cli.command('generate-script')
@click.option(
    '--inventory',
    type=click.Path(exists=True, dir_okay=False),
    help='YAML inventory of organizations, projects, repositories and teams',
)
@click.option(
    '--repo-list',
    type=click.Path(exists=True, dir_okay=False),
    help='CSV with org, teamproject and repo columns',
)
@click.option('--github-org', help='Target GitHub organization')
@click.option('--output', '-o', help='Generated script path')
@click.option(
    '--sequential',
    is_flag=True,
    help='Wait for each migration to finish before starting the next one',
)
@click.option('--create-teams', is_flag=True, help='Create teams and grant them access')
@click.option('--link-idp-groups', is_flag=True, help='Link created teams to IdP groups')
@click.option('--lock-ado-repos', is_flag=True, help='Lock source repositories')
@click.option('--disable-ado-repos', is_flag=True, help='Disable source repositories')
@click.option('--integrate-boards', is_flag=True, help='Integrate Azure Boards')
@click.option('--rewire-pipelines', is_flag=True, help='Rewire Azure Pipelines')
@click.option(
    '--download-migration-logs', is_flag=True, help='Download migration logs'
)
@click.option('--all', 'all_features', is_flag=True, help='Enable every option above')
@click.pass_context
def generate_script(
    ctx: click.Context,
    inventory: Optional[str],
    repo_list: Optional[str],
    github_org: Optional[str],
    output: Optional[str],
    sequential: bool,
    create_teams: bool,
    link_idp_groups: bool,
    lock_ado_repos: bool,
    disable_ado_repos: bool,
    integrate_boards: bool,
    rewire_pipelines: bool,
    download_migration_logs: bool,
    all_features: bool,
) -> None:
    """Generate a script that migrates every repository of an inventory."""
    console.print(
        Panel.fit(
            '[bold magenta]GitHub Migration Tool[/bold magenta]\nGenerating script...',
            border_style='magenta',
        )
    )

    try:
        if bool(inventory) == bool(repo_list):
            raise click.UsageError('Provide exactly one of --inventory or --repo-list')

        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        if inventory:
            loaded = Inventory.from_file(inventory, github_org=github_org)
        else:
            if not github_org:
                raise click.UsageError('--github-org is required with --repo-list')
            loaded = Inventory.from_repo_list(repo_list, github_org)

        if all_features:
            toggles = FeatureToggles.all_enabled()
        else:
            toggles = FeatureToggles(
                create_teams=create_teams,
                link_idp_groups=link_idp_groups,
                lock_source_repos=lock_ado_repos,
                disable_source_repos=disable_ado_repos,
                integrate_boards=integrate_boards,
                rewire_pipelines=rewire_pipelines,
                download_migration_logs=download_migration_logs,
            )

        destination = output or config.script.output
        MigrationEngine(config, redactor=ctx.obj['redactor']).generate_script(
            loaded, toggles, sequential=sequential, output=destination
        )

        console.print(
            f'[green]✓[/green] Migration script for {loaded.repository_count()} '
            f'repositories written to: {destination}'
        )

    except Exception as e:
        _fail(ctx, 'Script generation failed', e)


def _print_settings(settings) -> None:
    for name, value in settings:
        if value is not None:
            console.print(f'{name}: {value}')


def _fail(ctx: click.Context, summary: str, error: Exception) -> None:
    """Report a surfaced error and exit non-zero."""
    if isinstance(error, MigrationFailedError):
        console.print(
            f'[red]✗[/red] {summary} (ID: {error.migration_id}): '
            f'{escape(error.failure_reason or "no reason given")}'
        )
    else:
        console.print(f'[red]✗[/red] {summary}: {escape(str(error))}')

    if ctx.obj.get('verbose') and not isinstance(error, (MigrationError, click.UsageError)):
        console.print_exception()
    sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    # Try to load from default locations
    default_paths = ['config.yaml', 'config.yml', '.github-migrate.yaml']
    for path in default_paths:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    return Config.from_env()


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Verbose flag overrides the configured level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level,
        log_file=config.logging.file,
        log_format=config.logging.format,
        redactor=ctx.obj['redactor'],
    )


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print(
            '\n[red]Interrupted. Remote migrations that were already queued keep running.[/red]'
        )
        sys.exit(1)


if __name__ == '__main__':
    main()
