# src/file_access/settings.py
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# the platform refuses requests for more objects than this in a single call
DX_RESULTS_PER_CALL_LIMIT = 1000


class Settings(BaseSettings):
    """
    Single source of truth for file_access settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from file_access.settings import get_settings
        settings = get_settings()
        limit = settings.dx_results_per_call_limit
    """

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    # Reading and localization
    encoding: str = Field(
        default="utf-8",
        description="Character encoding used to decode file contents"
    )

    max_read_size: int = Field(
        default=256 * 1024 * 1024,
        description="Largest file (in bytes) that may be read into memory"
    )

    local_search_path: List[str] = Field(
        default_factory=list,
        description="Directories searched, in order, for relative local paths"
    )

    localization_root: Optional[str] = Field(
        default=None,
        description="Root directory under which remote files are localized"
    )

    disambiguation_subdir_prefix: str = Field(
        default="input",
        description="Prefix of numbered disambiguation subdirectories"
    )

    create_localization_dirs: bool = Field(
        default=True,
        description="Create localization directories when assigning paths"
    )

    # AWS / S3 Settings
    enable_s3: bool = Field(
        default=True,
        description="Register the s3:// protocol in the default resolver"
    )

    aws_region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices("FILE_ACCESS_AWS_REGION", "AWS_DEFAULT_REGION")
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FILE_ACCESS_AWS_ENDPOINT_URL", "AWS_ENDPOINT_URL")
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FILE_ACCESS_AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID")
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FILE_ACCESS_AWS_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY")
    )

    # Platform (dx://) Settings
    enable_dx: bool = Field(
        default=False,
        description="Register the dx:// protocol in the default resolver"
    )

    dx_api_server_url: str = Field(
        default="https://api.dnanexus.com",
        description="Base URL of the platform API server"
    )

    dx_api_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the platform API"
    )

    dx_project: Optional[str] = Field(
        default=None,
        description="Current project id, used when resolving paths without a project"
    )

    dx_workspace: Optional[str] = Field(
        default=None,
        description="Current workspace container id"
    )

    dx_results_per_call_limit: int = Field(
        default=DX_RESULTS_PER_CALL_LIMIT,
        description="Maximum number of objects in a single describe/find request"
    )

    dx_find_page_limit: Optional[int] = Field(
        default=None,
        description="Page size for find queries (server default when unset)"
    )

    # Concurrency / transport
    max_workers: int = Field(
        default=4,
        description="Worker threads used for independent per-container describe batches"
    )

    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for HTTP requests"
    )

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        """Accept lower-case level names."""
        if isinstance(v, str):
            v = v.strip().upper()
            valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if v not in valid_levels:
                raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return v

    @field_validator('dx_results_per_call_limit')
    @classmethod
    def validate_results_per_call_limit(cls, v):
        if v <= 0 or v > DX_RESULTS_PER_CALL_LIMIT:
            raise ValueError(
                f"dx_results_per_call_limit must be between 1 and {DX_RESULTS_PER_CALL_LIMIT}, got {v}"
            )
        return v

    @field_validator('dx_find_page_limit')
    @classmethod
    def validate_find_page_limit(cls, v):
        if v is not None and (v <= 0 or v > DX_RESULTS_PER_CALL_LIMIT):
            raise ValueError(
                f"dx_find_page_limit must be between 1 and {DX_RESULTS_PER_CALL_LIMIT}, got {v}"
            )
        return v

    @field_validator('max_workers')
    @classmethod
    def validate_max_workers(cls, v):
        if v < 1:
            raise ValueError(f"max_workers must be at least 1, got {v}")
        return v

    def get_environment_dict(self) -> dict:
        """Get configuration as a dictionary suitable for a subprocess environment."""
        env_dict = {
            'FILE_ACCESS_LOG_LEVEL': self.log_level,
            'FILE_ACCESS_ENCODING': self.encoding,
            'AWS_DEFAULT_REGION': self.aws_region,
            'FILE_ACCESS_DX_API_SERVER_URL': self.dx_api_server_url,
            'FILE_ACCESS_DX_RESULTS_PER_CALL_LIMIT': str(self.dx_results_per_call_limit),
            'FILE_ACCESS_MAX_WORKERS': str(self.max_workers),
        }
        if self.aws_endpoint_url:
            env_dict['AWS_ENDPOINT_URL'] = self.aws_endpoint_url
        if self.dx_project:
            env_dict['FILE_ACCESS_DX_PROJECT'] = self.dx_project
        return env_dict

    model_config = SettingsConfigDict(
        env_prefix="FILE_ACCESS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
