"""Tests for config CLI commands."""

import json
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from tandem.cli.main import cli, setup_logging
from tandem.core.config import ConfigManager
from tandem.services import TandemFactory


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("tandem.cli.main.setup_logging"):
        yield


class TestConfigCommands:
    """Test cases for config CLI commands."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_show_json(self, temp_dir):
        config_file = temp_dir / "tandem.toml"
        config_file.write_text("[performance]\nmax_buffer_size = 250\n")

        result = self.runner.invoke(cli, ["--config", str(config_file), "config", "show", "--format", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["performance"]["max_buffer_size"] == 250
        assert data["breakers"]["default"]["failure_threshold"] == 5

    def test_show_toml(self, temp_dir):
        config_file = temp_dir / "tandem.toml"

        result = self.runner.invoke(cli, ["--config", str(config_file), "config", "show"])

        assert result.exit_code == 0, result.output
        assert "state_store" in result.output
        assert "Source:" in result.output

    def test_show_env_override(self, temp_dir, monkeypatch):
        monkeypatch.setenv("TANDEM_PERFORMANCE_MAX_BUFFER_SIZE", "42")
        config_file = temp_dir / "tandem.toml"

        result = self.runner.invoke(cli, ["--config", str(config_file), "config", "show", "--format", "json"])

        assert json.loads(result.output)["performance"]["max_buffer_size"] == 42

    def test_init_writes_defaults(self, temp_dir):
        config_file = temp_dir / "conf" / "tandem.toml"

        result = self.runner.invoke(cli, ["--config", str(config_file), "config", "init"])

        assert result.exit_code == 0, result.output
        loaded = ConfigManager(config_file).load_config()
        assert loaded.state_store.ttl == 86400

    def test_init_refuses_to_overwrite(self, temp_dir):
        config_file = temp_dir / "tandem.toml"
        config_file.write_text("[general]\nservice_name = \"mine\"\n")

        result = self.runner.invoke(cli, ["--config", str(config_file), "config", "init"])

        assert result.exit_code == 1
        assert "already exists" in result.output
        assert "mine" in config_file.read_text()

    def test_init_force(self, temp_dir):
        config_file = temp_dir / "tandem.toml"
        config_file.write_text("[general]\nservice_name = \"mine\"\n")

        result = self.runner.invoke(cli, ["--config", str(config_file), "config", "init", "--force"])

        assert result.exit_code == 0, result.output
        assert ConfigManager(config_file).load_config().general.service_name == "tandem"

    def test_invalid_config_is_reported(self, temp_dir):
        config_file = temp_dir / "tandem.toml"
        config_file.write_text("[performance]\nmax_buffer_size = 0\n")

        result = self.runner.invoke(cli, ["--config", str(config_file), "config", "show"])

        assert result.exit_code != 0


class TestSetupLogging:
    def test_invalid_config_becomes_click_exception(self, temp_dir):
        config_file = temp_dir / "tandem.toml"
        config_file.write_text("not = [valid")

        with pytest.raises(click.ClickException):
            setup_logging(TandemFactory(ConfigManager(config_file)))
