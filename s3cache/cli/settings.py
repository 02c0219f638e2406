import logging
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "s3cache"

logger = logging.getLogger(APP_NAME)


class Settings(BaseSettings):
    """All of the configuration needed to reach the cache.

    Values come from ``S3_CACHE_*`` environment variables, or from a ``.env`` file in the working directory.
    This is resolved once at startup and not changed afterwards.
    """

    model_config = SettingsConfigDict(
        env_prefix="S3_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    bucket: str = Field(default="s3-cache")
    """ Name of the S3 bucket holding the cache. """

    endpoint: Optional[str] = Field(default=None)
    """ URL of an S3-compatible server, eg ``http://localhost:9000`` for minio. Defaults to AWS. """

    region: str = Field(default="us-east-1")

    access_key_id: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("S3_CACHE_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID"),
    )
    secret_access_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices(
            "S3_CACHE_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY"
        ),
    )

    create_bucket: bool = Field(default=False)
    """ Create the bucket if it doesn't exist, rather than failing. """

    concurrency: int = Field(default=16, ge=1)
    """ Maximum number of files transferred at once. """

    max_attempts: int = Field(default=5, ge=1)
    """ Attempts per S3 request before giving up, including the first. """

    store_dir: Optional[Path] = Field(default=None)
    """ If set, use this local directory as the store instead of S3. """

    def get_access_key_id(self) -> Optional[str]:
        return self.access_key_id.get_secret_value() if self.access_key_id else None

    def get_secret_access_key(self) -> Optional[str]:
        if self.secret_access_key is None:
            return None
        return self.secret_access_key.get_secret_value()
