import pytest

from newsgate.workflows.gate_config import DEFAULT_SOURCES_PATH, PipelineSettings


def test_settings_from_env_defaults(monkeypatch):
    for name in (
        "NEWSGATE_SOURCES_PATH",
        "NEWSGATE_NAV_TIMEOUT_MS",
        "NEWSGATE_RENDERER",
        "NEWSGATE_RESOLVE_DNS",
        "NEWSGATE_LLM_API_KEY",
        "OPENAI_API_KEY",
        "NEWSGATE_CITATION_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = PipelineSettings.from_env()
    assert settings.sources_path == DEFAULT_SOURCES_PATH
    assert settings.nav_timeout_ms == 30000
    assert settings.renderer == "playwright"
    assert settings.resolve_dns is True
    assert settings.llm_api_key is None
    assert settings.citation_mode == "random"


def test_settings_from_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("NEWSGATE_SOURCES_PATH", str(tmp_path / "sources.json"))
    monkeypatch.setenv("NEWSGATE_NAV_TIMEOUT_MS", "5000")
    monkeypatch.setenv("NEWSGATE_RENDERER", "Static")
    monkeypatch.setenv("NEWSGATE_RESOLVE_DNS", "0")
    monkeypatch.delenv("NEWSGATE_LLM_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-fallback")
    monkeypatch.setenv("NEWSGATE_CITATION_MODE", "stable")
    settings = PipelineSettings.from_env()
    assert settings.sources_path == tmp_path / "sources.json"
    assert settings.nav_timeout_ms == 5000
    assert settings.renderer == "static"
    assert settings.resolve_dns is False
    assert settings.llm_api_key == "sk-fallback"
    assert settings.citation_mode == "stable"


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("NEWSGATE_DOM_TIMEOUT_MS", "soon")
    monkeypatch.setenv("NEWSGATE_LLM_TIMEOUT", "")
    settings = PipelineSettings.from_env()
    assert settings.dom_timeout_ms == 10000
    assert settings.llm_timeout == 60.0


@pytest.mark.parametrize(
    "kwargs",
    [{"renderer": "lynx"}, {"citation_mode": "loudest"}, {"nav_timeout_ms": 0}],
)
def test_invalid_settings_raise(kwargs):
    with pytest.raises(ValueError):
        PipelineSettings(**kwargs)
