import boto3
import pytest
from moto import mock_aws

from file_access.settings import get_settings
from tests.consts import TEST_BUCKET_NAME, TEST_REGION

pytest_plugins = ["tests.fixtures.dx_fixtures", "tests.fixtures.local_fixtures"]


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that change the environment need a fresh copy."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mocked_aws(monkeypatch):
    """Moto-backed AWS with an empty test bucket; yields an S3 client."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("AWS_PROFILE", raising=False)

    with mock_aws():
        s3_client = boto3.client("s3", region_name=TEST_REGION)
        s3_client.create_bucket(Bucket=TEST_BUCKET_NAME)
        yield s3_client
