from typing import cast

import pytest
from pytest import MonkeyPatch

from linkguard.types import LambdaContext, LambdaConfiguration


@pytest.fixture
def config() -> LambdaConfiguration:
    return cast(LambdaConfiguration, {'redis': {'host': 'redis.test', 'port': 6379, 'db': 0}, 'abuse': {}})


@pytest.fixture(autouse=True)
def lambda_environment(monkeypatch: MonkeyPatch) -> None:
    """Deployed (non-local) environment without third-party verification secrets"""
    monkeypatch.setenv('APP_ENV', 'test')
    monkeypatch.setenv('APP_NAME', 'linkguard')
    monkeypatch.delenv('AWS_SAM_LOCAL', raising=False)
    monkeypatch.delenv('RECAPTCHA_SECRET_KEY', raising=False)
    monkeypatch.delenv('GOOGLE_SAFE_BROWSING_API_KEY', raising=False)
    monkeypatch.delenv('MONITORING_SECRET', raising=False)
