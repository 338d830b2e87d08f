import json
import logging

import pytest
from pydantic import ValidationError

from toolcall_engine.engine_core import EngineConfig, EngineSettings, GeoPoint, get_logger, setup_logging


def test_engine_config_defaults():
    config = EngineConfig()
    assert config.max_turns == 5
    assert config.history_item_limit == 5
    assert config.ui_item_limit == 15
    assert config.enrichment.pagination_defaults == {"limit": 10, "page": 1}
    assert config.enrichment.coordinates.fallback is None
    assert [rule.slot for rule in config.extraction_rules] == ["item_ids", "item_id"]
    assert config.empty_result_retries == []


def test_engine_config_rejects_invalid_budgets():
    with pytest.raises(ValidationError):
        EngineConfig(max_turns=0)


def test_engine_config_from_file(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text(
        json.dumps(
            {
                "max_turns": 3,
                "enrichment": {"pagination_defaults": {"limit": 20}},
                "empty_result_retries": [{"tools": ["search_*"], "broaden": "query"}],
            }
        ),
        encoding="utf-8",
    )
    config = EngineConfig.from_file(path)
    assert config.max_turns == 3
    assert config.enrichment.pagination_defaults == {"limit": 20}
    assert config.empty_result_retries[0].broaden == "query"
    assert config.ui_item_limit == 15


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("TOOLCALL_ENGINE_MAX_TURNS", "7")
    monkeypatch.setenv("TOOLCALL_ENGINE_DEFAULT_MODEL", "gemini-flash-latest")
    monkeypatch.setenv("TOOLCALL_ENGINE_FALLBACK_LATITUDE", "-23.5")
    monkeypatch.setenv("TOOLCALL_ENGINE_FALLBACK_LONGITUDE", "-46.6")

    settings = EngineSettings(_env_file=None)
    config = settings.to_config()

    assert settings.default_model == "gemini-flash-latest"
    assert config.max_turns == 7
    assert config.enrichment.coordinates.fallback == GeoPoint(latitude=-23.5, longitude=-46.6)


def test_settings_merge_into_base_without_mutating_it():
    base = EngineConfig(max_turns=2, ui_item_limit=4)
    config = EngineSettings(_env_file=None, history_item_limit=3, fallback_latitude=1.0).to_config(base)

    assert (config.max_turns, config.ui_item_limit, config.history_item_limit) == (2, 4, 3)
    assert config.enrichment.coordinates.fallback is None
    assert base.history_item_limit == 5


def test_settings_load_config_file(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text('{"history_window": 4}', encoding="utf-8")
    config = EngineSettings(_env_file=None, config_file=str(path), max_turns=9).to_config()
    assert (config.history_window, config.max_turns) == (4, 9)


def test_get_logger_namespacing():
    assert get_logger().name == "toolcall_engine"
    assert get_logger("toolcall_engine.engine_core.config").name == "toolcall_engine.engine_core.config"
    assert get_logger("my_app").name == "toolcall_engine.my_app"


def test_setup_logging_is_idempotent():
    root = logging.getLogger("toolcall_engine")
    before = list(root.handlers)
    try:
        setup_logging(logging.DEBUG)
        setup_logging(logging.DEBUG)
        added = [h for h in root.handlers if h not in before]
        assert len(added) <= 1
        assert any(not isinstance(h, logging.NullHandler) for h in root.handlers)
    finally:
        for handler in [h for h in root.handlers if h not in before]:
            root.removeHandler(handler)
