import pytest

from cometode.config import Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch):
    for key in ("COMETODE_DB_PATH", "COMETODE_CATALOG_PATH", "INTERVIEW_MODE", "DUE_LIMIT", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)

    s = Settings(_env_file=None)

    assert s.cometode_db_path == ".data/cometode.sqlite3"
    assert s.cometode_catalog_path is None
    assert s.interview_mode is False
    assert s.due_limit == 50
    assert s.log_level == "INFO"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path):
    db = tmp_path / "p.sqlite3"
    monkeypatch.setenv("COMETODE_DB_PATH", str(db))
    monkeypatch.setenv("INTERVIEW_MODE", "true")
    monkeypatch.setenv("DUE_LIMIT", "5")
    monkeypatch.setenv("LOG_LEVEL", " debug ")

    s = Settings(_env_file=None)

    assert s.cometode_db_path == str(db)
    assert s.interview_mode is True
    assert s.due_limit == 5
    assert s.log_level == "DEBUG"


def test_due_limit_must_be_positive(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DUE_LIMIT", "0")
    with pytest.raises(ValueError):
        Settings(_env_file=None)
