import os

from utils.config import AuditSettings, load_env_file, MB


def _clear(monkeypatch):
    for key in ("HF_TOKEN", "HUGGINGFACE_API_KEY", "HUGGINGFACE_TOKEN", "ANTHROPIC_API_KEY",
                "GEMINI_API_KEY", "PROVIDER_TIMEOUT", "SECTION_ANALYSIS", "DATABASE_PATH"):
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch):
    _clear(monkeypatch)
    settings = AuditSettings.from_env()
    assert settings.provider_timeout == 30.0
    assert settings.settle_delay_ms == 1000
    assert settings.section_analysis is True
    assert settings.screenshot_budget == 8 * MB
    assert settings.upload_budget == 2 * MB
    assert settings.provider_image_limit == 4 * MB


def test_huggingface_token_aliases(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("HUGGINGFACE_TOKEN", "hf_alias")
    assert AuditSettings.from_env().hf_token == "hf_alias"
    monkeypatch.setenv("HF_TOKEN", "hf_primary")
    assert AuditSettings.from_env().hf_token == "hf_primary"


def test_timeout_never_exceeds_thirty_seconds(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("PROVIDER_TIMEOUT", "90")
    assert AuditSettings.from_env().provider_timeout == 30.0
    monkeypatch.setenv("PROVIDER_TIMEOUT", "12")
    assert AuditSettings.from_env().provider_timeout == 12.0


def test_section_analysis_flag(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("SECTION_ANALYSIS", "false")
    assert AuditSettings.from_env().section_analysis is False


def test_load_env_file_from_cwd(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("UX_AUDIT_TEST_VALUE", raising=False)
    (tmp_path / ".env").write_text("# comment\nUX_AUDIT_TEST_VALUE='hello'\n", encoding="utf-8")
    monkeypatch.setattr("utils.config.PROJECT_ROOT", tmp_path / "missing")
    assert load_env_file()
    assert os.environ["UX_AUDIT_TEST_VALUE"] == "hello"
    monkeypatch.delenv("UX_AUDIT_TEST_VALUE")
