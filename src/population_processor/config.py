import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_REASONS = ("PutObject", "CompleteMultipartUpload")


def _positive_int(name: str, default: str) -> int:
    value = int(os.getenv(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer.")
    return value


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    # --- Required Variables ---
    output_bucket: str

    # --- Optional Variables with Defaults ---
    service_name: str
    environment: str
    source_bucket: str | None
    input_key_prefix: str
    output_key_prefix: str
    allowed_reasons: tuple[str, ...]
    log_level: str
    max_input_object_mb: int
    spool_file_max_size_mb: int
    timeout_guard_threshold_seconds: int
    preview_rows: int
    csv_separator: str
    output_kms_key_id: str | None

    # --- Idempotency (disabled when no table is configured) ---
    idempotency_table: str | None
    idempotency_ttl_days: int

    # --- Derived Properties ---
    @property
    def max_input_object_bytes(self) -> int:
        return self.max_input_object_mb * 1_048_576

    @property
    def spool_file_max_size_bytes(self) -> int:
        return self.spool_file_max_size_mb * 1_048_576

    @property
    def timeout_guard_threshold_ms(self) -> int:
        return self.timeout_guard_threshold_seconds * 1000

    @property
    def idempotency_ttl_seconds(self) -> int:
        return self.idempotency_ttl_days * 86_400

    @property
    def idempotency_enabled(self) -> bool:
        return bool(self.idempotency_table)

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            # --- Handle required string variables ---
            output_bucket = os.environ["OUTPUT_S3_BUCKET"].strip()
            if not output_bucket:
                raise ValueError("OUTPUT_S3_BUCKET must not be empty.")

            service_name = os.getenv("SERVICE_NAME", "population-processor")
            environment = os.getenv("ENVIRONMENT", "dev")
            source_bucket = os.getenv("SOURCE_BUCKET_NAME") or None

            # --- Key layout ---
            input_key_prefix = os.getenv("INPUT_KEY_PREFIX", "population")
            if not input_key_prefix:
                raise ValueError("INPUT_KEY_PREFIX must not be empty.")

            output_key_prefix = os.getenv("OUTPUT_KEY_PREFIX", "processed").strip("/")
            if not output_key_prefix:
                raise ValueError("OUTPUT_KEY_PREFIX must not be empty.")

            # Writing back under the input prefix would re-trigger the rule forever.
            # Output keys always start with "<output prefix>/".
            output_key_root = f"{output_key_prefix}/"
            if (source_bucket is None or source_bucket == output_bucket) and (
                output_key_root.startswith(input_key_prefix)
                or input_key_prefix.startswith(output_key_root)
            ):
                raise ValueError(
                    f"OUTPUT_KEY_PREFIX '{output_key_prefix}' overlaps INPUT_KEY_PREFIX "
                    f"'{input_key_prefix}': output keys would re-trigger the function."
                )

            raw_reasons = os.getenv("ALLOWED_REASONS", ",".join(DEFAULT_ALLOWED_REASONS))
            allowed_reasons = tuple(r.strip() for r in raw_reasons.split(",") if r.strip())
            if not allowed_reasons:
                raise ValueError("ALLOWED_REASONS must list at least one reason.")

            # --- Handle optional and numeric variables with validation ---
            max_input_object_mb = _positive_int("MAX_INPUT_OBJECT_MB", "512")
            spool_file_max_size_mb = _positive_int("SPOOL_FILE_MAX_SIZE_MB", "64")
            timeout_guard_threshold_seconds = _positive_int(
                "TIMEOUT_GUARD_THRESHOLD_SECONDS", "5"
            )
            idempotency_ttl_days = _positive_int("IDEMPOTENCY_TTL_DAYS", "7")

            preview_rows = int(os.getenv("PREVIEW_ROWS", "5"))
            if preview_rows < 0:
                raise ValueError("PREVIEW_ROWS must be a non-negative integer.")

            csv_separator = os.getenv("CSV_SEPARATOR", ",")
            if len(csv_separator) != 1:
                raise ValueError("CSV_SEPARATOR must be a single character.")

            # --- Handle special-case variables like log level ---
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

            idempotency_table = os.getenv("IDEMPOTENCY_TABLE_NAME") or None
            output_kms_key_id = os.getenv("OUTPUT_KMS_KEY_ID") or None

        except KeyError as e:
            raise ConfigurationError(
                f"Missing required environment variable: {e.args[0]}"
            ) from e
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            output_bucket=output_bucket,
            service_name=service_name,
            environment=environment,
            source_bucket=source_bucket,
            input_key_prefix=input_key_prefix,
            output_key_prefix=output_key_prefix,
            allowed_reasons=allowed_reasons,
            log_level=log_level,
            max_input_object_mb=max_input_object_mb,
            spool_file_max_size_mb=spool_file_max_size_mb,
            timeout_guard_threshold_seconds=timeout_guard_threshold_seconds,
            preview_rows=preview_rows,
            csv_separator=csv_separator,
            output_kms_key_id=output_kms_key_id,
            idempotency_table=idempotency_table,
            idempotency_ttl_days=idempotency_ttl_days,
        )


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the application configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.info("Loading application configuration from environment...")
    return AppConfig.load_from_env()
