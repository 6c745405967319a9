"""Tests for configuration management."""

import pytest
import tempfile
import os
from pathlib import Path
from unittest.mock import patch

import yaml
from pydantic import ValidationError

from github_migrate.config.config import (
    Config,
    GitHubConfig,
    MigrationConfig,
    LoggingConfig,
    secret_value,
)


class TestGitHubConfig:
    """Test GitHub instance configuration."""

    def test_valid_config(self):
        """Test valid configuration creation."""
        config = GitHubConfig(
            api_url='https://api.github.com',
            token='test-token',
            timeout=30,
            rate_limit_per_second=5,
        )

        assert config.api_url == 'https://api.github.com'
        assert config.token.get_secret_value() == 'test-token'
        assert config.timeout == 30
        assert config.rate_limit_per_second == 5

    def test_url_validation(self):
        """Test URL validation."""
        config = GitHubConfig(api_url='https://ghes.example.com/api/v3/')
        assert config.api_url == 'https://ghes.example.com/api/v3'

        with pytest.raises(ValidationError):
            GitHubConfig(api_url='ftp://github.com')

    def test_rate_limit_validation(self):
        """Test rate limit validation."""
        with pytest.raises(ValidationError):
            GitHubConfig(rate_limit_per_second=0)

    def test_graphql_url(self):
        """Test GraphQL endpoint derivation."""
        assert GitHubConfig().graphql_url == 'https://api.github.com/graphql'

    def test_token_is_not_shown(self):
        """Test that the token does not leak through repr."""
        config = GitHubConfig(token='super-secret')

        assert 'super-secret' not in repr(config)
        assert 'super-secret' not in str(config)


class TestMigrationConfig:
    """Test migration settings."""

    def test_defaults(self):
        """Test default values."""
        config = MigrationConfig()

        assert config.poll_interval_seconds == 10
        assert config.target_repo_visibility == 'private'
        assert config.wait is False

    def test_poll_interval_must_be_positive(self):
        """Test poll interval validation."""
        with pytest.raises(ValidationError):
            MigrationConfig(poll_interval_seconds=0)

    def test_visibility_validation(self):
        """Test visibility validation."""
        assert MigrationConfig(target_repo_visibility='Internal').target_repo_visibility == 'internal'

        with pytest.raises(ValidationError):
            MigrationConfig(target_repo_visibility='secret')


class TestLoggingConfig:
    """Test logging configuration."""

    def test_level_is_normalized(self):
        """Test log level normalization."""
        assert LoggingConfig(level='debug').level == 'DEBUG'

    def test_invalid_level(self):
        """Test invalid log level."""
        with pytest.raises(ValidationError):
            LoggingConfig(level='verbose')


class TestConfig:
    """Test main configuration."""

    def test_defaults(self):
        """Test configuration with nothing set."""
        config = Config()

        assert config.github.api_url == 'https://api.github.com'
        assert config.github.token is None
        assert config.ado.base_url == 'https://dev.azure.com'
        assert config.script.output == 'migrate.sh'
        assert config.script.command_prefix is None

    def test_extra_fields_are_rejected(self):
        """Test that unknown sections are rejected."""
        with pytest.raises(ValidationError):
            Config(jira={'url': 'https://jira.example.com'})

    def test_from_file(self):
        """Test loading configuration from YAML."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = os.path.join(temp_dir, 'config.yaml')
            with open(config_path, 'w') as f:
                yaml.dump(
                    {
                        'github': {'token': 'gh-token'},
                        'ado': {'token': 'ado-token'},
                        'migration': {'poll_interval_seconds': 2, 'wait': True},
                        'script': {'command_prefix': 'ado2gh'},
                    },
                    f,
                )

            config = Config.from_file(config_path)

        assert secret_value(config.github.token) == 'gh-token'
        assert secret_value(config.ado.token) == 'ado-token'
        assert config.migration.poll_interval_seconds == 2
        assert config.migration.wait is True
        assert config.script.command_prefix == 'ado2gh'

    def test_from_file_empty(self):
        """Test loading an empty YAML file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / 'config.yaml'
            config_path.write_text('')

            config = Config.from_file(str(config_path))

        assert config.github.api_url == 'https://api.github.com'

    def test_from_file_not_found(self):
        """Test loading a missing file."""
        with pytest.raises(FileNotFoundError):
            Config.from_file('/nonexistent/config.yaml')

    @patch('github_migrate.config.config.load_dotenv')
    def test_from_env(self, mock_load_dotenv):
        """Test loading configuration from environment variables."""
        env = {
            'GH_PAT': 'env-gh-token',
            'ADO_PAT': 'env-ado-token',
            'BBS_SERVER_URL': 'https://bitbucket.example.com',
            'MIGRATION_POLL_INTERVAL': '3',
            'TARGET_REPO_VISIBILITY': 'internal',
            'LOG_LEVEL': 'WARNING',
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        mock_load_dotenv.assert_called_once()
        assert secret_value(config.github.token) == 'env-gh-token'
        assert config.github.api_url == 'https://api.github.com'
        assert secret_value(config.ado.token) == 'env-ado-token'
        assert config.bbs.server_url == 'https://bitbucket.example.com'
        assert config.migration.poll_interval_seconds == 3
        assert config.migration.target_repo_visibility == 'internal'
        assert config.logging.level == 'WARNING'

    @patch('github_migrate.config.config.load_dotenv')
    def test_from_env_nothing_set(self, mock_load_dotenv):
        """Test that unset variables fall back to defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = Config.from_env()

        assert config.github.token is None
        assert config.logging.level == 'INFO'

    def test_to_file_redacts_secrets(self):
        """Test that saved configuration never contains secret values."""
        config = Config(github={'token': 'gh-secret'}, ado={'token': 'ado-secret'})

        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = os.path.join(temp_dir, 'nested', 'config.yaml')
            config.to_file(config_path)

            with open(config_path, 'r') as f:
                content = f.read()

        assert 'gh-secret' not in content
        assert 'ado-secret' not in content
        assert '***' in content

    def test_create_template(self):
        """Test template creation."""
        with tempfile.TemporaryDirectory() as temp_dir:
            template_path = os.path.join(temp_dir, 'template.yaml')
            Config.create_template(template_path)

            config = Config.from_file(template_path)

        assert config.github.api_url == 'https://api.github.com'
        assert config.migration.target_repo_visibility == 'private'
        assert config.logging.file == 'migration.log'
