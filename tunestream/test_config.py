import logging

import pytest

from tunestream.config import Config
from tunestream.logging_config import RequestIdFilter
from tunestream.request_id import request_id_context


def test_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PORT", "REDIS_URL", "STREAM_TOKENS", "DESCRIPTOR_TTL_SECONDS", "CACHE_CONTROL"):
        monkeypatch.delenv(name, raising=False)
    config = Config()
    assert config.port == 8000
    assert config.redis_url is None
    assert config.stream_tokens == frozenset()
    assert config.descriptor_ttl_seconds == 60
    assert config.cache_control == "public, max-age=31536000"


def test_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("STREAM_TOKENS", "a, b,,c")
    monkeypatch.setenv("DEBUG", "yes")
    monkeypatch.setenv("ORIGIN_READ_TIMEOUT", "2.5")
    config = Config()
    assert config.port == 9001
    assert config.stream_tokens == frozenset({"a", "b", "c"})
    assert config.debug is True
    assert config.origin_read_timeout == 2.5


def test_request_id_filter() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    token = request_id_context.set("abc")
    try:
        assert RequestIdFilter().filter(record)
    finally:
        request_id_context.reset(token)
    assert record.request_id == "abc"  # type: ignore[attr-defined]
