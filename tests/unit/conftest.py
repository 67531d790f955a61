"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import os
import types
import uuid
from dataclasses import replace

import pytest

# The handler module reads its configuration at import time, so the
# environment has to be in place before any test module imports it.
os.environ.setdefault("OUTPUT_S3_BUCKET", "population-output-test")
os.environ.setdefault("SERVICE_NAME", "population-processor-test")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")

from population_processor.config import AppConfig  # noqa: E402


BASE_CONFIG = AppConfig(
    output_bucket="population-output-test",
    service_name="population-processor-test",
    environment="test",
    source_bucket="population-source-test",
    input_key_prefix="population",
    output_key_prefix="processed",
    allowed_reasons=("PutObject", "CompleteMultipartUpload"),
    log_level="INFO",
    max_input_object_mb=512,
    spool_file_max_size_mb=64,
    timeout_guard_threshold_seconds=5,
    preview_rows=5,
    csv_separator=",",
    output_kms_key_id=None,
    idempotency_table=None,
    idempotency_ttl_days=7,
)


@pytest.fixture
def app_config() -> AppConfig:
    return BASE_CONFIG


@pytest.fixture
def make_config():
    """Build an AppConfig with a few fields overridden."""

    def _make(**overrides) -> AppConfig:
        return replace(BASE_CONFIG, **overrides)

    return _make


# ---------- Minimal, realistic dummy events ---------- #
@pytest.fixture
def object_created_detail() -> dict:
    """The `detail` of an EventBridge "Object Created" event (InputPath: $.detail)."""
    return {
        "version": "0",
        "bucket": {"name": "population-source-test"},
        "object": {
            "key": "population/2024/uk.csv",
            "size": 42,
            "etag": "d41d8cd98f00b204e9800998ecf8427e",
            "sequencer": "0062E99A88DC407460",
        },
        "request-id": "N4N7GDK58NMKJ12R",
        "requester": "123456789012",
        "source-ip-address": "1.2.3.4",
        "reason": "PutObject",
    }


@pytest.fixture
def eventbridge_event(object_created_detail) -> dict:
    """The full EventBridge envelope around an object-created detail."""
    return {
        "version": "0",
        "id": str(uuid.uuid4()),
        "detail-type": "Object Created",
        "source": "aws.s3",
        "account": "123456789012",
        "time": "2024-01-01T00:00:00Z",
        "region": "eu-west-1",
        "resources": ["arn:aws:s3:::population-source-test"],
        "detail": object_created_detail,
    }


@pytest.fixture
def s3_notification() -> dict:
    """A classic S3 event notification with a single PUT record."""
    return {
        "Records": [
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "awsRegion": "eu-west-1",
                "eventTime": "2024-01-01T00:00:00.000Z",
                "eventName": "ObjectCreated:Put",
                "responseElements": {"x-amz-request-id": "C3D13FE58DE4C810"},
                "s3": {
                    "bucket": {"name": "population-source-test"},
                    "object": {
                        "key": "population/2024/united+kingdom.csv",
                        "size": 42,
                        "versionId": "096fKKXTRTtl3on89fVO.nfljtsv6qko",
                        "sequencer": "0055AED6DCD90281E5",
                    },
                },
            }
        ]
    }


@pytest.fixture
def lambda_context():
    """A *very* small stand-in for the LambdaContext object."""
    return types.SimpleNamespace(
        function_name="population-processor",
        memory_limit_in_mb=3008,
        aws_request_id="req-" + uuid.uuid4().hex,
        invoked_function_arn="arn:aws:lambda:eu-west-1:000000000000:function:dummy",
        get_remaining_time_in_millis=lambda: 29000,
    )
