import pytest

from app import config
from app.exceptions import FailedPrecondition
from app.utils import sentry


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://a.example", ["https://a.example"]),
        (" https://a.example , ,https://b.example ", ["https://a.example", "https://b.example"]),
    ],
)
def test_allowed_origins_parsing(monkeypatch, raw, expected):
    monkeypatch.setenv("ALLOWED_ORIGINS", raw)
    assert config.allowed_origins() == expected


@pytest.mark.parametrize("raw", ["", "  ", " , ", "https://a.example,*"])
def test_allowed_origins_rejects_unsafe_values(monkeypatch, raw):
    monkeypatch.setenv("ALLOWED_ORIGINS", raw)
    with pytest.raises(ValueError):
        config.allowed_origins()


def test_sentry_is_off_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    assert sentry.sentry_options() is None
    assert sentry.init_sentry() is False


def test_sentry_options_from_environment(monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example/1")
    monkeypatch.setenv("SENTRY_ENVIRONMENT", "staging")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.25")
    monkeypatch.setenv("SENTRY_PROFILES_SAMPLE_RATE", "7")
    options = sentry.sentry_options()
    assert options["environment"] == "staging"
    assert options["release"] is None
    assert options["traces_sample_rate"] == 0.25
    assert options["profiles_sample_rate"] == 0.0


def test_expected_errors_are_not_reported():
    event = {"message": "boom"}
    expected = FailedPrecondition("proposal is already closed")
    assert sentry.drop_expected_errors(event, {"exc_info": (type(expected), expected, None)}) is None

    crash = RuntimeError("boom")
    assert sentry.drop_expected_errors(event, {"exc_info": (type(crash), crash, None)}) is event
    assert sentry.drop_expected_errors(event, {}) is event
