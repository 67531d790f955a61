"""
Key handling for the Population Processor service.

Object keys arrive from an event we do not control and are later used to
build the key of the object we write. This module validates incoming keys
and derives output keys from them, so that a crafted key can neither escape
the output prefix nor land back under the prefix that triggers the function.
"""

import unicodedata
import urllib.parse
from pathlib import PurePosixPath

from .exceptions import InvalidS3EventError, ValidationError

_INVALID_CONTROL_CHARS: set[int] = set(range(0x00, 0x20)) | {0x7F}  # includes DEL
_MAX_KEY_BYTES = 1024
_MAX_UNQUOTE_ROUNDS = 5


def _has_traversal(path: str) -> bool:
    return any(part == ".." for part in path.replace("\\", "/").split("/"))


def sanitize_s3_key(key: str) -> str:
    """
    Validate an S3 object key and return its normalised POSIX form.

    Rejects keys that are not strings, exceed the 1024-byte S3 limit, contain
    control or Unicode format characters, or contain ``..`` segments either
    literally or once URL-decoded. Redundant separators and ``.`` segments
    are collapsed and leading slashes dropped.

    Examples:
        >>> sanitize_s3_key("population/2024//uk.csv")
        'population/2024/uk.csv'

        >>> sanitize_s3_key("population/../secret.csv")
        Traceback (most recent call last):
        ...
        ValidationError: S3 key contains path traversal or invalid path components
    """
    if not isinstance(key, str):
        raise ValidationError(
            "S3 key is not a valid string",
            error_code="INVALID_S3_KEY_TYPE",
            context={"type": type(key).__name__},
        )

    utf8_length = len(key.encode("utf-8"))
    if utf8_length > _MAX_KEY_BYTES:
        raise ValidationError(
            "S3 key exceeds byte length limit",
            error_code="INVALID_S3_KEY_FORMAT",
            context={"key_length": utf8_length},
        )

    for char in key:
        if ord(char) in _INVALID_CONTROL_CHARS:
            raise ValidationError(
                "S3 key contains invalid control characters",
                error_code="INVALID_S3_KEY_FORMAT",
                context={"key": key.encode("unicode_escape").decode("ascii")},
            )
        if unicodedata.category(char) == "Cf":
            raise ValidationError(
                "S3 key contains invalid Unicode invisible characters",
                error_code="INVALID_S3_KEY_FORMAT",
                context={"key": key, "char_code": hex(ord(char))},
            )

    if _has_traversal(key):
        raise ValidationError(
            "S3 key contains path traversal or invalid path components",
            error_code="UNSAFE_S3_KEY_PATH",
            context={"key": key},
        )

    # Catch %2e%2e and nested encodings of it.
    decoded = key
    for _ in range(_MAX_UNQUOTE_ROUNDS):
        unquoted = urllib.parse.unquote(decoded)
        if unquoted == decoded:
            break
        decoded = unquoted
    if decoded != key and _has_traversal(decoded):
        raise ValidationError(
            "S3 key contains URL-encoded path traversal sequences",
            error_code="UNSAFE_S3_KEY_PATH",
            context={"key": key, "decoded_key": decoded},
        )

    safe_path = str(PurePosixPath(key)).lstrip("/")
    if safe_path in {"", "."}:
        raise ValidationError(
            "S3 key contains path traversal or invalid path components",
            error_code="UNSAFE_S3_KEY_PATH",
            context={"key": key, "normalized_path": safe_path},
        )

    return safe_path


def build_output_key(input_key: str, input_prefix: str, output_prefix: str) -> str:
    """
    Derive the key of the processed CSV from the key of the input object.

    The input prefix is replaced by the output prefix and the rest of the key,
    file name and extension included, is kept as is::

        population/2024/uk.txt  ->  processed/2024/uk.txt

    When the prefix covers part of the file name (``population.csv``), the
    file name itself is kept.
    """
    safe_key = sanitize_s3_key(input_key)
    if input_key.endswith("/"):
        raise InvalidS3EventError(
            "S3 key is a folder marker and has no file name",
            error_code="EMPTY_OBJECT_NAME",
            context={"key": input_key, "input_prefix": input_prefix},
        )

    remainder = safe_key[len(input_prefix):] if safe_key.startswith(input_prefix) else safe_key
    remainder = remainder.lstrip("/_-")
    if not remainder or remainder.startswith("."):
        remainder = PurePosixPath(safe_key).name
    return f"{output_prefix.strip('/')}/{remainder}"
