import pathlib
import sys

import pytest

smartlink_path = pathlib.Path(__file__).resolve().parents[1] / "smartlink"
sys.path.insert(0, str(smartlink_path))

from modules.base import PlatformRegistry
from modules.helperClasses import AcrCloudConfig, ResolverConfig


@pytest.fixture(autouse=True)
def reset_platform_registry():
    original = dict(PlatformRegistry._strategies)
    try:
        yield
    finally:
        PlatformRegistry._strategies = original


@pytest.fixture(autouse=True, scope="session")
def add_smartlink_to_path():
    yield
    sys.path.remove(str(smartlink_path))


@pytest.fixture
def acr_config():
    return AcrCloudConfig(
        base_url="https://acr.example",
        bearer_token="secret-token",
        max_retries=0,
        retry_backoff_seconds=0,
        max_requests_per_second=100.0,
    )


@pytest.fixture
def resolver_config(tmp_path, acr_config):
    return ResolverConfig(
        acrcloud=acr_config,
        db_path=str(tmp_path / "resolutions.db"),
    )
