# tests/unit/test_security.py

import pytest

from population_processor.exceptions import InvalidS3EventError
from population_processor.security import (
    ValidationError,
    build_output_key,
    sanitize_s3_key,
)


class TestSanitizeS3Key:
    """Test suite for the sanitize_s3_key function."""

    @pytest.mark.parametrize(
        "key, expected_safe_key",
        [
            ("population/2024/uk.csv", "population/2024/uk.csv"),
            ("population/./2024//uk.csv", "population/2024/uk.csv"),
            ("/population/uk.csv", "population/uk.csv"),
            ("population/sub/", "population/sub"),
            ("population/uk..2024.csv", "population/uk..2024.csv"),
            ("population/Zürich 2024.csv", "population/Zürich 2024.csv"),
        ],
    )
    def test_valid_keys(self, key, expected_safe_key):
        assert sanitize_s3_key(key) == expected_safe_key

    @pytest.mark.parametrize(
        "invalid_key, expected_error_code",
        [
            ("population/../secret.csv", "UNSAFE_S3_KEY_PATH"),
            ("../population.csv", "UNSAFE_S3_KEY_PATH"),
            ("population\\..\\secret.csv", "UNSAFE_S3_KEY_PATH"),
            ("population/%2e%2e/secret.csv", "UNSAFE_S3_KEY_PATH"),
            ("population/%252e%252e/secret.csv", "UNSAFE_S3_KEY_PATH"),
            ("/", "UNSAFE_S3_KEY_PATH"),
            ("./", "UNSAFE_S3_KEY_PATH"),
            ("population/uk\x00.csv", "INVALID_S3_KEY_FORMAT"),
            ("population/uk\n.csv", "INVALID_S3_KEY_FORMAT"),
            ("population/\u200buk.csv", "INVALID_S3_KEY_FORMAT"),
            ("population/" + "a" * 1024, "INVALID_S3_KEY_FORMAT"),
        ],
    )
    def test_invalid_keys(self, invalid_key, expected_error_code):
        with pytest.raises(ValidationError) as exc_info:
            sanitize_s3_key(invalid_key)
        assert exc_info.value.error_code == expected_error_code

    def test_non_string_key(self):
        with pytest.raises(ValidationError) as exc_info:
            sanitize_s3_key(123)  # type: ignore[arg-type]
        assert exc_info.value.error_code == "INVALID_S3_KEY_TYPE"


class TestBuildOutputKey:
    @pytest.mark.parametrize(
        "input_key, expected",
        [
            ("population/2024/uk.csv", "processed/2024/uk.csv"),
            ("population/2024/uk.txt", "processed/2024/uk.txt"),
            ("population/2024/uk.CSV", "processed/2024/uk.CSV"),
            ("population/uk", "processed/uk"),
            ("population_uk.csv", "processed/uk.csv"),
            ("population-2024.csv", "processed/2024.csv"),
            ("population.csv", "processed/population.csv"),
            ("population.2024.csv", "processed/population.2024.csv"),
            ("population", "processed/population"),
        ],
    )
    def test_derives_key_under_output_prefix(self, input_key, expected):
        assert build_output_key(input_key, "population", "processed") == expected

    def test_keys_differing_only_by_extension_do_not_collide(self):
        csv_key = build_output_key("population/2024/uk.csv", "population", "processed")
        txt_key = build_output_key("population/2024/uk.txt", "population", "processed")

        assert csv_key != txt_key

    def test_output_prefix_slashes_are_normalised(self):
        assert build_output_key("population/uk.csv", "population", "/out/") == "out/uk.csv"

    @pytest.mark.parametrize("input_key", ["population/", "population//", "population/2024/"])
    def test_folder_marker_is_rejected(self, input_key):
        with pytest.raises(InvalidS3EventError) as exc_info:
            build_output_key(input_key, "population", "processed")
        assert exc_info.value.error_code == "EMPTY_OBJECT_NAME"

    def test_output_never_lands_under_input_prefix(self):
        for key in ["population/a.csv", "population.csv", "population/population.csv"]:
            output = build_output_key(key, "population", "processed")
            assert not output.startswith("population")
