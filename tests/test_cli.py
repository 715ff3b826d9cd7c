"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from conftest import ScriptedProvider, analysis_json
from trade_council import TradeCouncil
from trade_council.cli.main import app
from trade_council.config import EngineConfig

runner = CliRunner()

CONFIG_YAML = """
providers:
  - id: alpha
    base_url: https://alpha.example.com/v1
    model: alpha-model
    team: night
  - id: beta
    base_url: https://beta.example.com/v1
    model: beta-model
    team: night
    tier: 2
  - id: gamma
    base_url: https://gamma.example.com/v1
    model: gamma-model
    credential_ref: TC_TEST_GAMMA_KEY
    team: day
teams:
  - name: night
    start_hour: 0
    end_hour: 12
  - name: day
    start_hour: 12
    end_hour: 0
"""

KEYED_ONLY_YAML = """
providers:
  - id: gamma
    base_url: https://gamma.example.com/v1
    model: gamma-model
    credential_ref: TC_TEST_GAMMA_KEY
"""

SNAPSHOT = {
    "id": "mint-123",
    "symbol": "TEST",
    "name": "Test Token",
    "price_usd": 0.0004,
    "volume_24h_usd": 125000,
    "market_cap_usd": 420000,
}


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("TC_TEST_GAMMA_KEY", raising=False)
    yield
    package_logger = logging.getLogger("trade_council")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_trade_council", False):
            package_logger.removeHandler(handler)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "council.yaml"
    path.write_text(CONFIG_YAML)
    return path


@pytest.fixture
def snapshot_file(tmp_path: Path) -> Path:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(SNAPSHOT))
    return path


def _scripted_council(**scripts):
    """TradeCouncil factory that swaps real adapters for scripted ones."""

    def factory(engine_config: EngineConfig) -> TradeCouncil:
        adapters = {pid: ScriptedProvider(script) for pid, script in scripts.items()}
        return TradeCouncil(engine_config, adapters=adapters)

    return factory


class TestCLIHelp:
    """Tests for CLI help commands."""

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "trading consensus" in result.stdout

    def test_decide_help(self):
        result = runner.invoke(app, ["decide", "--help"])
        assert result.exit_code == 0
        assert "--budget" in result.stdout

    def test_roster_help(self):
        result = runner.invoke(app, ["roster", "--help"])
        assert result.exit_code == 0
        assert "--hour" in result.stdout


class TestCLIVersion:
    """Tests for version command."""

    def test_version(self):
        from trade_council import __version__

        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Trade Council" in result.stdout
        assert __version__ in result.stdout


class TestCLIConfig:
    """Tests for config command."""

    def test_config_show_no_file(self):
        result = runner.invoke(app, ["config", "--show"])
        assert result.exit_code == 0
        assert "No configuration file found" in result.stdout

    def test_config_init_writes_loadable_file(self, tmp_path):
        result = runner.invoke(app, ["config", "--init"])
        assert result.exit_code == 0

        config_file = tmp_path / ".config" / "trade-council" / "config.yaml"
        assert config_file.exists()
        data = yaml.safe_load(config_file.read_text())
        assert {t["name"] for t in data["teams"]} == {"asia", "europe", "americas"}

        loaded = EngineConfig.from_yaml(config_file)
        assert loaded.team("americas").members == ["openrouter", "xai"]

    def test_config_show_after_init(self):
        runner.invoke(app, ["config", "--init"])
        result = runner.invoke(app, ["config", "--show"])
        assert result.exit_code == 0
        assert "credential_ref" in result.stdout

    def test_config_no_options(self):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Usage" in result.stdout


class TestCLIRoster:
    """Tests for roster command."""

    def test_roster_for_hour(self, config_file):
        result = runner.invoke(app, ["roster", "--hour", "3", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Team night" in result.stdout
        assert "alpha" in result.stdout
        assert "beta" in result.stdout

    def test_roster_without_premium(self, config_file):
        result = runner.invoke(
            app, ["roster", "--hour", "3", "--no-premium", "--config", str(config_file)]
        )
        assert result.exit_code == 0
        assert "Dropped: beta" in result.stdout

    def test_member_without_key_is_substituted(self, config_file):
        result = runner.invoke(app, ["roster", "--hour", "15", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Team day" in result.stdout
        assert "alpha" in result.stdout
        assert "gamma" in result.stdout

    def test_roster_without_any_keys(self, tmp_path):
        path = tmp_path / "keyed.yaml"
        path.write_text(KEYED_ONLY_YAML)
        result = runner.invoke(app, ["roster", "--config", str(path)])
        assert result.exit_code == 0
        assert "No providers available" in result.stdout

    def test_roster_hour_is_validated(self, config_file):
        result = runner.invoke(app, ["roster", "--hour", "24", "--config", str(config_file)])
        assert result.exit_code != 0

    def test_roster_bad_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("providers: [unclosed")
        result = runner.invoke(app, ["roster", "--config", str(path)])
        assert result.exit_code == 1
        assert "Invalid YAML" in result.stdout


class TestCLIDoctor:
    """Tests for doctor command."""

    def test_doctor_shows_providers(self, config_file):
        result = runner.invoke(app, ["doctor", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Provider Status" in result.stdout
        assert "SKIPPED" in result.stdout
        assert "TC_TEST_GAMMA_KEY not set" in result.stdout


class TestCLIDecide:
    """Tests for decide command."""

    def test_decide_requires_snapshot(self):
        result = runner.invoke(app, ["decide"])
        assert result.exit_code != 0

    def test_decide_without_providers_fails(self, tmp_path, snapshot_file):
        path = tmp_path / "keyed.yaml"
        path.write_text(KEYED_ONLY_YAML)
        result = runner.invoke(app, ["decide", str(snapshot_file), "--config", str(path), "--json"])
        assert result.exit_code == 1
        assert '"error"' in result.stdout

    def test_decide_json(self, config_file, snapshot_file):
        factory = _scripted_council(
            alpha=analysis_json("buy", 0.9), beta=analysis_json("buy", 0.7)
        )
        with patch("trade_council.TradeCouncil", side_effect=factory):
            result = runner.invoke(
                app,
                [
                    "decide",
                    str(snapshot_file),
                    "--config",
                    str(config_file),
                    "--budget",
                    "0.05",
                    "--json",
                ],
            )

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["action"] == "buy"
        assert payload["asset_id"] == "mint-123"
        assert payload["suggested_position_size"] == pytest.approx(0.05)
        assert len(payload["votes"]) in (1, 2)

    def test_decide_rich_output(self, config_file, snapshot_file):
        factory = _scripted_council(
            alpha=analysis_json("sell", 0.9), beta=analysis_json("sell", 0.8)
        )
        with patch("trade_council.TradeCouncil", side_effect=factory):
            result = runner.invoke(
                app,
                ["decide", str(snapshot_file), "--config", str(config_file), "--verbose"],
            )

        assert result.exit_code == 0
        assert "SELL" in result.stdout
        assert "Votes" in result.stdout

    def test_decide_batch_from_list(self, config_file, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps([SNAPSHOT, {**SNAPSHOT, "id": "mint-456", "symbol": "TWO"}]))
        factory = _scripted_council(
            alpha=analysis_json("hold", 0.6), beta=analysis_json("hold", 0.6)
        )
        with patch("trade_council.TradeCouncil", side_effect=factory):
            result = runner.invoke(
                app, ["decide", str(path), "--config", str(config_file), "--json"]
            )

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert {d["asset_id"] for d in payload["decisions"]} == {"mint-123", "mint-456"}

    def test_decide_rejects_bad_snapshot_file(self, config_file, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text('"just a string"')
        result = runner.invoke(app, ["decide", str(path), "--config", str(config_file)])
        assert result.exit_code == 1
        assert "Error" in result.stdout
