# In src/population_processor/schemas.py

from typing import Any, Literal, NotRequired, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import ValidationError as CustomValidationError
from .security import sanitize_s3_key

# --- Static Type Hinting (for mypy and IDEs) ---


class S3BucketDict(TypedDict):
    name: str


class S3ObjectDict(TypedDict):
    key: str
    size: NotRequired[int]
    etag: NotRequired[str]
    sequencer: NotRequired[str]


class ObjectCreatedDetailDict(TypedDict):
    """
    The ``detail`` of an EventBridge "Object Created" event, which is what the
    function receives when the rule uses ``InputPath: $.detail``.
    """

    bucket: S3BucketDict
    object: S3ObjectDict
    reason: NotRequired[str]


# --- Runtime Validation (using Pydantic) ---


class S3BucketModel(BaseModel):
    name: str = Field(..., min_length=1)


class S3ObjectModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(..., min_length=1)
    # The unmodified key, used for the S3 calls themselves.
    original_key: str = Field("", exclude=True)
    size: int | None = Field(None, ge=0)
    etag: str | None = None
    version_id: str | None = Field(None, alias="version-id")
    sequencer: str | None = None

    @model_validator(mode="before")
    @classmethod
    def keep_original_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "key" in data:
            data = {**data, "original_key": data["key"]}
        return data

    @field_validator("key")
    @classmethod
    def validate_s3_key_security(cls, value: str) -> str:
        try:
            return sanitize_s3_key(value)
        except CustomValidationError as e:
            raise ValueError(str(e))


class ObjectCreatedDetail(BaseModel):
    """
    Pydantic model for runtime parsing and validation of an object-created detail.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket: S3BucketModel
    object: S3ObjectModel
    reason: str | None = None
    request_id: str | None = Field(None, alias="request-id")
    requester: str | None = None

    @property
    def source_uri(self) -> str:
        return f"s3://{self.bucket.name}/{self.object.original_key}"


class ProcessingResponse(BaseModel):
    """What the handler returns for each object it was asked about."""

    req_id: str
    bucket: str
    key: str
    msg: str
    status: Literal["processed", "skipped", "failed"]
    output_bucket: str | None = None
    output_key: str | None = None
    rows: int | None = None
    columns: int | None = None
    content_sha256: str | None = None
    elapsed_ms: int | None = None
    error_code: str | None = None
