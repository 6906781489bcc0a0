"""
Config, logging and middleware plumbing tests.
"""

import json
import logging

import pytest

from governance_engine import limiter
from governance_engine.config import ProductionConfig, TestingConfig
from governance_engine.middleware.logging_config import JSONFormatter, ReadableFormatter
from governance_engine.middleware.rate_limiter import rate_limit_key


def _record(msg="Governance vote cast", **extra):
    record = logging.LogRecord("governance_engine.services", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_carries_context_fields():
    out = json.loads(JSONFormatter().format(_record(review_id=7, actor="u1", unrelated="x")))
    assert out["message"] == "Governance vote cast"
    assert out["level"] == "INFO"
    assert out["review_id"] == 7
    assert out["actor"] == "u1"
    assert "unrelated" not in out


def test_readable_formatter_appends_context():
    line = ReadableFormatter().format(_record(review_id=3, submission_id=9))
    assert "review_id=3" in line
    assert "submission_id=9" in line


def test_testing_config_uses_plain_engine_options():
    assert TestingConfig.SQLALCHEMY_ENGINE_OPTIONS == {}
    assert TestingConfig.RATELIMIT_ENABLED is False


def test_production_config_requires_database_url(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        ProductionConfig()


def test_production_config_requires_secret_key(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", "postgresql://db/governance")
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        ProductionConfig()


def test_rate_limit_key_prefers_caller_identity(app):
    with app.test_request_context("/api/v1/governance/queue", headers={"X-User-Oid": "u1"}):
        app.preprocess_request()
        assert rate_limit_key() == "user:u1"
    with app.test_request_context("/api/v1/governance/queue", environ_base={"REMOTE_ADDR": "10.0.0.9"}):
        app.preprocess_request()
        assert rate_limit_key() == "10.0.0.9"


def test_rate_limit_key_reads_header_before_identity_hook(app):
    with app.test_request_context("/api/v1/governance/queue", headers={"X-User-Oid": " u7 "}):
        assert rate_limit_key() == "user:u7"


def test_identity_hook_runs_before_limiter(app):
    hooks = app.before_request_funcs[None]
    names = [getattr(f, "__name__", "") for f in hooks]
    limiter_hooks = [i for i, f in enumerate(hooks) if getattr(f, "__self__", None) is limiter]
    assert names.index("_load_identity") < min(limiter_hooks, default=len(hooks))
