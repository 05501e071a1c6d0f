import pytest
from pydantic import ValidationError

from file_access.settings import DX_RESULTS_PER_CALL_LIMIT, Settings, get_settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ["AWS_DEFAULT_REGION", "AWS_ENDPOINT_URL", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"]:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings(_env_file=None)

    assert settings.log_level == "INFO"
    assert settings.enable_s3
    assert not settings.enable_dx
    assert settings.aws_region == "us-east-1"
    assert settings.dx_results_per_call_limit == DX_RESULTS_PER_CALL_LIMIT
    assert settings.disambiguation_subdir_prefix == "input"
    assert settings.local_search_path == []


def test_environment_overrides(clean_env):
    clean_env.setenv("FILE_ACCESS_LOG_LEVEL", "debug")
    clean_env.setenv("FILE_ACCESS_ENABLE_DX", "true")
    clean_env.setenv("FILE_ACCESS_DX_PROJECT", "project-" + "A" * 24)
    clean_env.setenv("FILE_ACCESS_LOCAL_SEARCH_PATH", '["/data", "/refs"]')
    clean_env.setenv("AWS_DEFAULT_REGION", "eu-central-1")

    settings = get_settings()

    assert settings.log_level == "DEBUG"
    assert settings.enable_dx
    assert settings.dx_project == "project-" + "A" * 24
    assert settings.local_search_path == ["/data", "/refs"]
    assert settings.aws_region == "eu-central-1"
    assert get_settings() is settings


def test_prefixed_aws_setting_wins(clean_env):
    clean_env.setenv("FILE_ACCESS_AWS_REGION", "ap-south-1")
    clean_env.setenv("AWS_DEFAULT_REGION", "eu-central-1")

    assert Settings(_env_file=None).aws_region == "ap-south-1"


@pytest.mark.parametrize("kwargs", [
    {"log_level": "chatty"},
    {"dx_results_per_call_limit": 0},
    {"dx_results_per_call_limit": DX_RESULTS_PER_CALL_LIMIT + 1},
    {"dx_find_page_limit": 0},
    {"max_workers": 0},
])
def test_invalid_values(clean_env, kwargs):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **kwargs)


def test_environment_dict(clean_env):
    settings = Settings(_env_file=None, dx_project="project-" + "A" * 24, aws_endpoint_url="http://localhost:9000")

    env = settings.get_environment_dict()

    assert env["FILE_ACCESS_DX_PROJECT"] == "project-" + "A" * 24
    assert env["AWS_ENDPOINT_URL"] == "http://localhost:9000"
    assert env["FILE_ACCESS_DX_RESULTS_PER_CALL_LIMIT"] == str(DX_RESULTS_PER_CALL_LIMIT)
