# src/population_processor/clients.py

"""
Client wrapper for interacting with S3.

The wrapper gives the core logic a small typed interface over the raw boto3
client and translates botocore failures into the service's exception
taxonomy, so that callers can decide between retrying and giving up without
inspecting AWS error codes themselves.
"""

import logging
from typing import TYPE_CHECKING, BinaryIO, Callable, cast

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from .exceptions import (
    OutputWriteError,
    PopulationProcessingError,
    S3AccessDeniedError,
    S3ObjectNotFoundError,
    S3ThrottlingError,
    S3TimeoutError,
    S3TransientError,
)

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client as S3ClientType

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_ACCESS_DENIED_CODES = {"AccessDenied", "403", "Forbidden"}
_THROTTLING_CODES = {"Throttling", "ThrottlingException", "RequestLimitExceeded", "SlowDown"}
_TIMEOUT_CODES = {"RequestTimeout", "RequestTimeoutException"}


def _translate_client_error(
    e: ClientError,
    *,
    operation: str,
    bucket: str,
    key: str,
    fallback: Callable[[str, dict], PopulationProcessingError],
) -> PopulationProcessingError:
    """Map a botocore ClientError onto one of our exception types."""
    error = e.response.get("Error", {})
    error_code = str(error.get("Code", "Unknown"))
    error_message = error.get("Message", str(e))
    aws_context = {"aws_error_code": error_code, "aws_error_message": error_message}

    if error_code in _NOT_FOUND_CODES:
        return S3ObjectNotFoundError(bucket=bucket, key=key, context=aws_context)
    if error_code in _ACCESS_DENIED_CODES:
        return S3AccessDeniedError(bucket=bucket, key=key, context=aws_context)
    if error_code in _THROTTLING_CODES:
        return S3ThrottlingError(
            operation, context={"bucket": bucket, "key": key, **aws_context}
        )
    if error_code in _TIMEOUT_CODES:
        return S3TimeoutError(
            operation, context={"bucket": bucket, "key": key, **aws_context}
        )
    return fallback(error_message, {"bucket": bucket, "key": key, **aws_context})


def _object_params(bucket: str, key: str, version_id: str | None) -> dict[str, str]:
    params = {"Bucket": bucket, "Key": key}
    if version_id:
        params["VersionId"] = version_id
    return params


class S3Client:
    """
    A wrapper for S3 client operations used by the processor.
    """

    def __init__(self, s3_client: "S3ClientType", kms_key_id: str | None = None):
        """
        Initializes the S3Client.

        Args:
            s3_client: A typed boto3 S3 client.
            kms_key_id: Optional KMS key ID for server-side encryption of outputs.
        """
        self._client = s3_client
        self._kms_key_id = kms_key_id
        if self._kms_key_id:
            logger.debug(
                "S3Client initialized with SSE-KMS enabled.",
                extra={"kms_key_id": self._kms_key_id},
            )

    def get_file_content_stream(
        self, bucket: str, key: str, version_id: str | None = None
    ) -> BinaryIO:
        """
        Retrieves an S3 object's body as a file-like streaming object.
        When *version_id* is given, that exact version is read.
        Raises specific S3 exceptions based on the error type.
        """
        try:
            response = self._client.get_object(**_object_params(bucket, key, version_id))
            return cast(BinaryIO, response["Body"])
        except ClientError as e:
            raise _translate_client_error(
                e,
                operation="GetObject",
                bucket=bucket,
                key=key,
                fallback=lambda msg, ctx: S3TransientError(
                    f"S3 client error: {msg}", context=ctx
                ),
            ) from e
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "GetObject",
                context={"bucket": bucket, "key": key, "connection_error": str(e)},
            ) from e

    def head_object_size(self, bucket: str, key: str, version_id: str | None = None) -> int:
        """Returns the object's ContentLength, for events that carry no size."""
        try:
            response = self._client.head_object(**_object_params(bucket, key, version_id))
            return int(response["ContentLength"])
        except ClientError as e:
            raise _translate_client_error(
                e,
                operation="HeadObject",
                bucket=bucket,
                key=key,
                fallback=lambda msg, ctx: S3TransientError(
                    f"S3 client error: {msg}", context=ctx
                ),
            ) from e
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "HeadObject",
                context={"bucket": bucket, "key": key, "connection_error": str(e)},
            ) from e

    def upload_csv(
        self,
        bucket: str,
        key: str,
        file_obj: BinaryIO,
        content_hash: str,
        source_uri: str,
    ) -> None:
        """Uploads a CSV file-like object to S3 via a managed, streaming upload."""
        extra_args = {
            "Metadata": {"content-sha256": content_hash, "source-object": source_uri},
            "ContentType": "text/csv",
        }
        if self._kms_key_id:
            extra_args.update(
                {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": self._kms_key_id}
            )
        logger.info(
            "Uploading processed CSV",
            extra={"bucket": bucket, "key": key, "kms_enabled": bool(self._kms_key_id)},
        )

        try:
            self._client.upload_fileobj(
                Fileobj=file_obj, Bucket=bucket, Key=key, ExtraArgs=extra_args
            )
        except ClientError as e:
            raise _translate_client_error(
                e,
                operation="PutObject",
                bucket=bucket,
                key=key,
                fallback=lambda msg, ctx: OutputWriteError(msg, context=ctx),
            ) from e
        except S3UploadFailedError as e:
            raise OutputWriteError(
                str(e), context={"bucket": bucket, "key": key}
            ) from e
        except (ReadTimeoutError, EndpointConnectionError) as e:
            raise S3TimeoutError(
                "PutObject",
                context={"bucket": bucket, "key": key, "connection_error": str(e)},
            ) from e

        logger.debug(
            "Upload (PUT) completed successfully",
            extra={"bucket": bucket, "key": key},
        )
