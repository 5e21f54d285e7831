from __future__ import annotations

import pytest

from blogpulse.api.deps import Settings, attribution_config, dedupe_config, engagement_config, session_config
from blogpulse.app_shell.config import validate_ops_rules
from blogpulse.rules.models import OpsRules, Rules


def test_defaults_pass(tmp_path):
    validate_ops_rules(Rules(), tmp_path)


def test_missing_data_dir_exits(tmp_path):
    rules = Rules(ops=OpsRules(data_dir_required=True))
    with pytest.raises(SystemExit):
        validate_ops_rules(rules, tmp_path / "missing")


def test_missing_env_exits(tmp_path, monkeypatch, caplog):
    monkeypatch.delenv("BLOGPULSE_TEST_REQUIRED", raising=False)
    rules = Rules(ops=OpsRules(required_env=["BLOGPULSE_TEST_REQUIRED"]))

    with pytest.raises(SystemExit):
        validate_ops_rules(rules, tmp_path)
    assert "BLOGPULSE_TEST_REQUIRED" in caplog.text


def test_present_env_passes(tmp_path, monkeypatch):
    monkeypatch.setenv("BLOGPULSE_TEST_REQUIRED", "1")
    validate_ops_rules(Rules(ops=OpsRules(required_env=["BLOGPULSE_TEST_REQUIRED"])), tmp_path)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("true", True), ("1", True), ("off", False), ("FALSE", False), ("maybe", None)],
)
def test_rate_limit_env_flag(monkeypatch, value, expected):
    monkeypatch.setenv("ENABLE_RATE_LIMIT", value)
    assert Settings().rate_limit_enabled is expected


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BLOGPULSE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("BLOGPULSE_SITE_ORIGIN", "https://blog.example.com")

    settings = Settings()

    assert settings.db_path == str(tmp_path / "blogpulse.db")
    assert attribution_config(Rules(), settings).site_origin == "https://blog.example.com"


def test_rules_map_to_component_configs():
    rules = Rules.model_validate(
        {"analytics": {"session_timeout_minutes": 45, "navigation_dedupe_seconds": 5}}
    )
    assert session_config(rules).inactivity_timeout.total_seconds() == 45 * 60
    assert dedupe_config(rules).navigation_window_seconds == 5


def test_engagement_allow_lists_from_rules():
    rules = Rules.model_validate({"engagement": {"share_platforms": [" Mastodon "]}})

    config = engagement_config(rules)

    assert config.share_platforms == frozenset({"mastodon"})
    assert "newsletter" in config.cta_targets
