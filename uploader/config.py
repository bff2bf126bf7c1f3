"""Configuration settings and per-operation option schemas for the uploader."""

import os
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from common.constants import (
    CHUNK_SIZE_BYTES,
    DB_PROVIDER,
    DEFAULT_AUTHOR,
    DEFAULT_TRANSCODER,
    KUBO_API_URL,
    MAX_ACTIVE_JOBS,
    MAX_FILE_SIZE_BYTES,
    PROTOCOL_TOPIC_PREFIX,
    TRANSCODER_DROP_URL,
    XHR_CHUNK_SIZE_BYTES,
)
from uploader.exceptions import ValidationError

T = TypeVar('T', bound=BaseModel)


class UploaderSettings(BaseModel):
    """Process-wide settings, constructed once and injected into the Uploader."""
    model_config = ConfigDict(extra='forbid', frozen=True)

    chunk_size: int = Field(default=CHUNK_SIZE_BYTES, gt=0)
    xhr_chunk_size: int = Field(default=XHR_CHUNK_SIZE_BYTES, gt=0)
    max_file_size: int = Field(default=MAX_FILE_SIZE_BYTES, gt=0)
    default_transcoder: str = Field(default=DEFAULT_TRANSCODER, min_length=1)
    transcoder_drop_url: str = TRANSCODER_DROP_URL
    db_provider: str = DB_PROVIDER
    job_timeout: Optional[float] = Field(default=None, gt=0)
    connect_retries: int = Field(default=0, ge=0)
    send_retries: int = Field(default=0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1)
    max_active_jobs: int = Field(default=MAX_ACTIVE_JOBS, gt=0)
    kubo_api_url: str = KUBO_API_URL
    topic_prefix: str = PROTOCOL_TOPIC_PREFIX

    @classmethod
    def from_env(cls, **overrides: Any) -> 'UploaderSettings':
        """Build settings from VIDSWARM_* environment variables plus explicit overrides."""
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            env_value = os.environ.get(f"VIDSWARM_{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        values.update(overrides)
        return validate_options(cls, values)


class TranscodeOptions(BaseModel):
    """Options accepted by Uploader.transcode. Unknown keys are kept."""
    model_config = ConfigDict(extra='allow')

    author: str = DEFAULT_AUTHOR
    transcoder: Optional[str] = None
    transcoder_id: Optional[str] = None
    size: int = Field(default=0, ge=0)
    timeout: Optional[float] = Field(default=None, gt=0)


class PinOptions(TranscodeOptions):
    """Options accepted by Uploader.pin_file."""
    pass


class MetaDataOptions(BaseModel):
    """Options accepted by Uploader.get_metadata."""
    model_config = ConfigDict(extra='allow')

    transcoder: Optional[str] = None
    transcoder_id: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)


def validate_options(schema: Type[T], options: Optional[Dict[str, Any]]) -> T:
    """
    Validate an option bag against its schema, filling defaults.

    Raises:
        ValidationError: If the options don't match the schema
    """
    try:
        return schema.model_validate(options or {})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {schema.__name__}: {e.error_count()} error(s): {e}",
            errors=e.errors()
        ) from e
