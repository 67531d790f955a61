# src/population_processor/triggers.py

"""
The event-trigger contract of the function.

The deployed EventBridge rule forwards only the ``detail`` of S3 "Object
Created" events whose key starts with the input prefix and whose reason is
``PutObject`` or ``CompleteMultipartUpload``. Manual invocations and tests
may instead send the full EventBridge envelope or a classic S3 notification.
This module turns any of those shapes into a list of detail dicts and
re-applies the rule, so the function behaves the same however it is invoked.
"""

from typing import Any
from urllib.parse import unquote_plus

from .config import AppConfig
from .exceptions import InvalidS3EventError
from .schemas import ObjectCreatedDetail

EVENT_SOURCE = "aws.s3"

# S3 notification eventName -> EventBridge detail.reason
_EVENT_NAME_TO_REASON = {
    "ObjectCreated:Put": "PutObject",
    "ObjectCreated:Post": "PostObject",
    "ObjectCreated:Copy": "CopyObject",
    "ObjectCreated:CompleteMultipartUpload": "CompleteMultipartUpload",
}


def _detail_from_notification_record(record: dict[str, Any]) -> dict[str, Any]:
    s3 = record.get("s3")
    if not isinstance(s3, dict):
        raise InvalidS3EventError(
            "S3 notification record has no 's3' section",
            context={"record_keys": sorted(record)},
        )

    s3_object = dict(s3.get("object") or {})
    # Notification records use camelCase for the version id.
    if "versionId" in s3_object:
        s3_object["version-id"] = s3_object.pop("versionId")
    # Notification keys are URL-encoded; EventBridge keys are not.
    if isinstance(s3_object.get("key"), str):
        s3_object["key"] = unquote_plus(s3_object["key"])

    detail: dict[str, Any] = {"bucket": s3.get("bucket") or {}, "object": s3_object}
    event_name = record.get("eventName")
    if event_name:
        detail["reason"] = _EVENT_NAME_TO_REASON.get(event_name, event_name)
    request_id = (record.get("responseElements") or {}).get("x-amz-request-id")
    if request_id:
        detail["request-id"] = request_id
    return detail


def extract_details(event: Any) -> list[dict[str, Any]]:
    """
    Normalise an incoming payload into a list of object-created details.

    Supported shapes, in order of precedence:
      * an EventBridge envelope carrying a ``detail`` object;
      * an S3 notification with a ``Records`` list (possibly empty);
      * a bare detail, as delivered under ``InputPath: $.detail``.
    """
    if not isinstance(event, dict):
        raise InvalidS3EventError(
            "Event payload is not a JSON object",
            context={"type": type(event).__name__},
        )

    if "detail" in event:
        source = event.get("source")
        if source is not None and source != EVENT_SOURCE:
            raise InvalidS3EventError(
                f"Unsupported event source: {source}",
                error_code="UNSUPPORTED_EVENT_SOURCE",
                context={"source": source},
            )
        detail = event["detail"]
        if not isinstance(detail, dict):
            raise InvalidS3EventError("EventBridge 'detail' is not an object")
        return [detail]

    if "Records" in event:
        records = event["Records"]
        if not isinstance(records, list):
            raise InvalidS3EventError("'Records' is not a list")
        return [_detail_from_notification_record(r) for r in records]

    if "bucket" in event and "object" in event:
        return [event]

    raise InvalidS3EventError(
        "Event is neither an S3 object-created detail nor an S3 notification",
        context={"event_keys": sorted(event)},
    )


def matches_trigger(detail: ObjectCreatedDetail, config: AppConfig) -> tuple[bool, str]:
    """
    Re-apply the rule's pattern to a validated detail.

    Returns ``(True, "")`` when the object should be processed, otherwise
    ``(False, <why>)``. A missing reason is accepted so that hand-written
    test events do not have to carry one.
    """
    if config.source_bucket and detail.bucket.name != config.source_bucket:
        return False, f"bucket '{detail.bucket.name}' is not the source bucket"

    if not detail.object.original_key.startswith(config.input_key_prefix):
        return False, f"key does not start with '{config.input_key_prefix}'"

    if detail.object.original_key.endswith("/"):
        return False, "key is a folder marker"

    if detail.reason is not None and detail.reason not in config.allowed_reasons:
        return False, f"reason '{detail.reason}' is not one of {list(config.allowed_reasons)}"

    return True, ""
