from __future__ import annotations

import msgspec
import pytest

from faultline.config import AppConfig, load_config
from faultline.retry import RetryPolicy


def test_defaults() -> None:
    config = AppConfig()
    assert config.default_status == 500
    assert config.retry == RetryPolicy(attempts=3, backoff=1.0)
    assert config.observability.log_level == "INFO"


def test_default_status_must_describe_an_error() -> None:
    with pytest.raises(ValueError):
        AppConfig(default_status=200)


def test_from_mapping_converts_nested_values() -> None:
    config = AppConfig.from_mapping({"default_status": 503, "retry": {"attempts": 5, "backoff": 0.5}})
    assert config.default_status == 503
    assert config.retry.attempts == 5
    assert config.retry.backoff == 0.5


def test_from_mapping_rejects_invalid_retry() -> None:
    with pytest.raises(msgspec.ValidationError):
        AppConfig.from_mapping({"retry": {"attempts": 0}})


def test_load_config_reads_environment() -> None:
    config = load_config(
        {
            "FAULTLINE_DEFAULT_STATUS": "502",
            "FAULTLINE_RETRY_ATTEMPTS": "2",
            "FAULTLINE_RETRY_BACKOFF": "0.1",
            "FAULTLINE_LOG_LEVEL": "debug",
            "FAULTLINE_REQUEST_TIMEOUT": "2.5",
        }
    )
    assert config.default_status == 502
    assert config.retry == RetryPolicy(attempts=2, backoff=0.1)
    assert config.observability.log_level == "DEBUG"
    assert config.request_timeout == 2.5


def test_load_config_keeps_base_when_environment_is_empty() -> None:
    base = AppConfig(default_status=503)
    config = load_config({"FAULTLINE_RETRY_ATTEMPTS": "  "}, base=base)
    assert config == base


@pytest.mark.parametrize(
    "environ",
    [
        {"FAULTLINE_DEFAULT_STATUS": "200"},
        {"FAULTLINE_RETRY_ATTEMPTS": "0"},
        {"FAULTLINE_RETRY_BACKOFF": "fast"},
    ],
)
def test_load_config_rejects_invalid_values(environ: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        load_config(environ)
