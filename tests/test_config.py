import pytest

from app.hse.config import load_config, load_settings, production_problems


def test_defaults(monkeypatch):
    for name in ("ENV", "STORAGE_BACKEND", "ESIGN_MAX_RETRIES", "S3_PREFIX"):
        monkeypatch.delenv(name, raising=False)
    cfg = load_config()
    assert cfg["ENV"] == "development"
    assert cfg["STORAGE_BACKEND"] == "local"
    assert cfg["ESIGN_MAX_RETRIES"] == 3
    assert cfg["S3_PREFIX"] == "hse-documents"
    assert cfg["SESSION_COOKIE_SECURE"] is False


def test_bad_integer_env_fails_loudly(monkeypatch):
    monkeypatch.setenv("WORKFLOW_DECISION_RETRIES", "three")
    with pytest.raises(RuntimeError, match="WORKFLOW_DECISION_RETRIES"):
        load_settings()


def test_production_problems():
    assert production_problems({"ENV": "development", "DATABASE_URL": "sqlite:///x.db"}) == []

    problems = production_problems({"ENV": "production", "DATABASE_URL": "sqlite:///x.db", "SECRET_KEY": "change-me"})
    assert len(problems) == 2
    assert "Postgres" in problems[0]

    ok = {"ENV": "prod", "DATABASE_URL": "postgresql+psycopg2://u@db/hse", "SECRET_KEY": "s3cr3t-value"}
    assert production_problems(ok) == []
