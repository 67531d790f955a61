"""
The Lambda Adapter & Orchestrator for the Population Processor service.

This module is the main entry point for the AWS Lambda function. It is
responsible for:
1.  Initializing and configuring AWS Lambda Powertools (Logger, Tracer, Metrics,
    and, when a table is configured, Idempotency).
2.  Normalising the incoming payload (EventBridge detail, EventBridge envelope
    or S3 notification) into object-created details and validating them.
3.  Re-applying the trigger rule so that objects outside the input prefix, or
    created by an unexpected API call, are skipped.
4.  Invoking the core business logic (`process_object`) once per object.
5.  Routing failures: non-retryable errors are reported in the response,
    retryable ones are re-raised so that Lambda retries the invocation.
"""

import json
from dataclasses import asdict
from typing import Any
from urllib.parse import quote

import boto3
import pydantic
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.idempotency import (
    IdempotencyConfig,
    idempotent_function,
)
from aws_lambda_powertools.utilities.idempotency.exceptions import (
    IdempotencyAlreadyInProgressError,
)
from aws_lambda_powertools.utilities.idempotency.persistence.dynamodb import (
    DynamoDBPersistenceLayer,
)
from aws_lambda_powertools.utilities.typing import LambdaContext

from .clients import S3Client
from .config import get_config
from .core import process_object
from .exceptions import (
    InvalidS3EventError,
    PopulationProcessingError,
    get_error_context,
    is_retryable_error,
)
from .schemas import ObjectCreatedDetail, ProcessingResponse
from .triggers import extract_details, matches_trigger

# --- Global & Reusable Components ---
CONFIG = get_config()

logger = Logger(service=CONFIG.service_name, level=CONFIG.log_level)
tracer = Tracer(service=CONFIG.service_name)
metrics = Metrics(
    namespace="PopulationProcessing",
    service=CONFIG.service_name,
)

s3_boto_client = boto3.client("s3")
s3_client = S3Client(s3_client=s3_boto_client, kms_key_id=CONFIG.output_kms_key_id)

idempotency_config = IdempotencyConfig(
    event_key_jmespath="idempotency_key",
    expires_after_seconds=CONFIG.idempotency_ttl_seconds,
    use_local_cache=True,
    raise_on_no_idempotency_key=True,
)

COMPLETED_MSG = "Completed Processing Data!"


def _make_idempotency_key(bucket: str, key: str, unique_part: str | None) -> str:
    """
    Deterministic key for one write of one object.

    For versioned buckets the version id identifies the write; otherwise the
    sequencer does, with the etag as a last resort for hand-written events.
    """
    raw = json.dumps({"b": bucket, "k": key, "u": unique_part or ""}, separators=(",", ":"))
    return quote(raw, safe="")


def _process_detail(
    *, data: dict[str, Any], detail: ObjectCreatedDetail, context: LambdaContext
) -> dict[str, Any]:
    """Runs the core logic; only `data` takes part in the idempotency check."""
    outcome = process_object(detail, s3_client, CONFIG, context)
    return asdict(outcome)


if CONFIG.idempotency_enabled:
    idempotency_persistence_layer = DynamoDBPersistenceLayer(
        table_name=CONFIG.idempotency_table,
        key_attr="object_key",
    )
    _process_detail_once = idempotent_function(
        data_keyword_argument="data",
        config=idempotency_config,
        persistence_store=idempotency_persistence_layer,
    )(_process_detail)
else:
    _process_detail_once = _process_detail


def _raw_location(raw_detail: Any) -> tuple[str, str]:
    """Best-effort bucket/key of a detail that failed validation, for reporting."""
    if not isinstance(raw_detail, dict):
        return "", ""
    bucket = raw_detail.get("bucket") or {}
    s3_object = raw_detail.get("object") or {}
    name = bucket.get("name") if isinstance(bucket, dict) else None
    key = s3_object.get("key") if isinstance(s3_object, dict) else None
    return str(name or ""), str(key or "")


def _handle_detail(raw_detail: dict[str, Any], context: LambdaContext) -> ProcessingResponse:
    """Validate, filter and process one object-created detail."""
    req_id = context.aws_request_id

    try:
        detail = ObjectCreatedDetail.model_validate(raw_detail)
    except pydantic.ValidationError as e:
        bucket, key = _raw_location(raw_detail)
        metrics.add_metric(name="InvalidEvents", unit=MetricUnit.Count, value=1)
        logger.warning(
            "Object-created detail failed validation.",
            extra={
                "bucket": bucket,
                "key": key,
                "validation_errors": e.errors(include_url=False, include_context=False),
            },
        )
        return ProcessingResponse(
            req_id=req_id,
            bucket=bucket,
            key=key,
            status="failed",
            msg="Invalid object-created detail",
            error_code="INVALID_S3_EVENT",
        )

    bucket = detail.bucket.name
    key = detail.object.original_key

    matched, why = matches_trigger(detail, CONFIG)
    if not matched:
        metrics.add_metric(name="SkippedEvents", unit=MetricUnit.Count, value=1)
        logger.info("Skipping object outside the trigger rule.", extra={"key": key, "why": why})
        return ProcessingResponse(
            req_id=req_id, bucket=bucket, key=key, status="skipped", msg=f"Skipped: {why}"
        )

    logger.info(f"Request is for {bucket} and object {key}")

    payload = {
        "idempotency_key": _make_idempotency_key(
            bucket,
            key,
            detail.object.version_id or detail.object.sequencer or detail.object.etag,
        ),
        "detail": raw_detail,
    }

    try:
        result = _process_detail_once(data=payload, detail=detail, context=context)

    except IdempotencyAlreadyInProgressError:
        metrics.add_metric(name="DuplicateEvents", unit=MetricUnit.Count, value=1)
        logger.info("Object is already being processed elsewhere.", extra={"key": key})
        return ProcessingResponse(
            req_id=req_id,
            bucket=bucket,
            key=key,
            status="skipped",
            msg="Skipped: already in progress",
        )

    except PopulationProcessingError as e:
        if is_retryable_error(e):
            metrics.add_metric(name="RetryableErrors", unit=MetricUnit.Count, value=1)
            logger.warning(
                f"Retryable error, invocation will be retried: {e}",
                extra={"error": get_error_context(e)},
            )
            raise

        metrics.add_metric(name="NonRetryableErrors", unit=MetricUnit.Count, value=1)
        logger.error(
            f"Non-retryable error processing object: {e}",
            extra={"error": get_error_context(e)},
        )
        return ProcessingResponse(
            req_id=req_id,
            bucket=bucket,
            key=key,
            status="failed",
            msg=e.message,
            error_code=e.error_code,
        )

    except Exception as e:
        metrics.add_metric(name="UnexpectedErrors", unit=MetricUnit.Count, value=1)
        logger.exception(
            "Unexpected error processing object.",
            extra={"key": key, "error_type": type(e).__name__},
        )
        raise

    metrics.add_metric(name="ProcessedObjects", unit=MetricUnit.Count, value=1)
    metrics.add_metric(name="ProcessedRows", unit=MetricUnit.Count, value=result["rows"])

    return ProcessingResponse(
        req_id=req_id,
        bucket=bucket,
        key=key,
        status="processed",
        msg=COMPLETED_MSG,
        output_bucket=result["output_bucket"],
        output_key=result["output_key"],
        rows=result["rows"],
        columns=result["columns"],
        content_sha256=result["content_sha256"],
        elapsed_ms=result["elapsed_ms"],
    )


@logger.inject_lambda_context()
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def handler(event: dict, context: LambdaContext) -> dict[str, Any]:
    """Main Lambda handler for S3 object-created events."""
    metrics.add_dimension("environment", CONFIG.environment)
    idempotency_config.register_lambda_context(context)

    try:
        details = extract_details(event)
    except InvalidS3EventError as e:
        metrics.add_metric(name="InvalidEvents", unit=MetricUnit.Count, value=1)
        logger.error(f"Unrecognised event payload: {e}", extra={"error": get_error_context(e)})
        return {"req_id": context.aws_request_id, "results": [], "msg": e.message}

    if not details:
        logger.info("Empty S3 event received")
        return {"req_id": context.aws_request_id, "results": [], "msg": "No records"}

    logger.info("Received request", extra={"records": len(details)})

    responses = [_handle_detail(raw, context) for raw in details]

    if len(responses) == 1:
        return responses[0].model_dump()

    return {
        "req_id": context.aws_request_id,
        "results": [r.model_dump() for r in responses],
        "msg": f"Handled {len(responses)} objects",
    }
