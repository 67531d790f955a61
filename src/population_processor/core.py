# src/population_processor/core.py

"""
Core business logic for processing a single population CSV object.

The main entry point, `process_object`, downloads one S3 object, loads it into
a DataFrame, normalises it and writes the result to the output bucket under a
key derived from the input key. Guards run before any byte is fetched so that
an invocation close to its deadline, or an object too large for the function's
memory, fails fast with an error the handler knows how to route.
"""

import hashlib
import io
import logging
import time
from contextlib import closing
from dataclasses import dataclass
from tempfile import SpooledTemporaryFile
from typing import BinaryIO, cast

from aws_lambda_powertools.utilities.typing import LambdaContext

from .clients import S3Client
from .config import AppConfig
from .exceptions import (
    ConfigurationError,
    InputTooLargeError,
    MemoryLimitError,
    ProcessingTimeoutError,
    SizeMismatchError,
)
from .frames import read_csv_frame, transform, write_csv_bytes
from .schemas import ObjectCreatedDetail
from .security import build_output_key

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ProcessingOutcome:
    """What happened to one input object."""

    output_bucket: str
    output_key: str
    rows: int
    columns: int
    content_sha256: str
    input_bytes: int
    elapsed_ms: int


# --- Helpers ---
def _buffer_stream(stream: BinaryIO, spool_threshold: int) -> tuple[BinaryIO, int]:
    """
    Read *stream* into a SpooledTemporaryFile (in-RAM up to *spool_threshold*,
    then /tmp on disk) while counting bytes.

    Returns the rewound file-like object and the number of bytes copied.
    """
    tmp = SpooledTemporaryFile(max_size=spool_threshold, mode="w+b")

    copied = 0
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        tmp.write(chunk)
        copied += len(chunk)

    tmp.seek(0)
    return cast(BinaryIO, tmp), copied


def _check_remaining_time(context: LambdaContext, config: AppConfig) -> None:
    remaining_ms = context.get_remaining_time_in_millis()
    if remaining_ms < config.timeout_guard_threshold_ms:
        raise ProcessingTimeoutError(remaining_ms)


def _resolve_input_size(
    detail: ObjectCreatedDetail, s3_client: S3Client
) -> tuple[int, bool]:
    """Size of the input object, and whether it came from the event itself."""
    if detail.object.size is not None:
        return detail.object.size, True
    size = s3_client.head_object_size(
        detail.bucket.name, detail.object.original_key, version_id=detail.object.version_id
    )
    return size, False


# --- Orchestrator ---
def process_object(
    detail: ObjectCreatedDetail,
    s3_client: S3Client,
    config: AppConfig,
    context: LambdaContext,
) -> ProcessingOutcome:
    """
    Download, transform and re-upload one population CSV.

    Raises one of the service exceptions on failure; the handler decides
    whether that failure is retried.
    """
    start = time.monotonic()
    bucket = detail.bucket.name
    key = detail.object.original_key

    _check_remaining_time(context, config)

    # Derive the output key first so that a bad key fails before any I/O.
    output_key = build_output_key(key, config.input_key_prefix, config.output_key_prefix)
    if bucket == config.output_bucket and output_key.startswith(config.input_key_prefix):
        raise ConfigurationError(
            "Output key would re-trigger the function",
            context={"key": key, "output_key": output_key},
        )

    expected_size, size_from_event = _resolve_input_size(detail, s3_client)
    if expected_size > config.max_input_object_bytes:
        raise InputTooLargeError(
            expected_size, config.max_input_object_bytes, context={"key": key}
        )

    logger.info(
        "Processing object",
        extra={"bucket": bucket, "key": key, "size_bytes": expected_size},
    )

    try:
        stream = s3_client.get_file_content_stream(
            bucket, key, version_id=detail.object.version_id
        )
        with closing(stream):
            buffered, actual_size = _buffer_stream(
                stream, config.spool_file_max_size_bytes
            )

        with closing(buffered):
            if size_from_event and actual_size != expected_size:
                raise SizeMismatchError(expected_size, actual_size, context={"key": key})
            logger.info("Object is downloaded", extra={"key": key, "size_bytes": actual_size})

            frame = read_csv_frame(buffered, separator=config.csv_separator)

        frame = transform(frame, preview_rows=config.preview_rows)
        payload = write_csv_bytes(frame, separator=config.csv_separator)
    except MemoryError as e:
        raise MemoryLimitError(
            "CSV processing", context={"key": key, "size_bytes": expected_size}
        ) from e

    content_hash = hashlib.sha256(payload).hexdigest()

    # The Lambda may have spent most of its time parsing; don't start a PUT we can't finish.
    _check_remaining_time(context, config)
    s3_client.upload_csv(
        bucket=config.output_bucket,
        key=output_key,
        file_obj=io.BytesIO(payload),
        content_hash=content_hash,
        source_uri=detail.source_uri,
    )

    outcome = ProcessingOutcome(
        output_bucket=config.output_bucket,
        output_key=output_key,
        rows=frame.height,
        columns=frame.width,
        content_sha256=content_hash,
        input_bytes=actual_size,
        elapsed_ms=int((time.monotonic() - start) * 1000),
    )
    logger.info(
        "Completed processing data",
        extra={
            "key": key,
            "output_key": output_key,
            "rows": outcome.rows,
            "columns": outcome.columns,
            "elapsed_ms": outcome.elapsed_ms,
        },
    )
    return outcome
