# tests/unit/test_schemas.py

import pydantic
import pytest

from population_processor.schemas import ObjectCreatedDetail, ProcessingResponse


class TestObjectCreatedDetail:
    """Test suite for the ObjectCreatedDetail Pydantic model."""

    def test_valid_detail(self, object_created_detail):
        parsed = ObjectCreatedDetail.model_validate(object_created_detail)

        assert parsed.bucket.name == "population-source-test"
        assert parsed.object.key == "population/2024/uk.csv"
        assert parsed.object.size == 42
        assert parsed.object.sequencer == "0062E99A88DC407460"
        assert parsed.object.version_id is None
        assert parsed.reason == "PutObject"
        assert parsed.request_id == "N4N7GDK58NMKJ12R"
        assert parsed.source_uri == "s3://population-source-test/population/2024/uk.csv"

    def test_original_key_is_preserved(self):
        """The sanitised key replaces 'key' but the raw key is kept for S3 calls."""
        parsed = ObjectCreatedDetail.model_validate(
            {
                "bucket": {"name": "b"},
                "object": {"key": "/population//uk.csv", "version-id": "v1"},
            }
        )

        assert parsed.object.key == "population/uk.csv"
        assert parsed.object.original_key == "/population//uk.csv"
        assert parsed.object.version_id == "v1"
        assert parsed.object.size is None
        assert parsed.reason is None

    def test_unsafe_key_raises_pydantic_validation_error(self):
        with pytest.raises(pydantic.ValidationError) as exc_info:
            ObjectCreatedDetail.model_validate(
                {"bucket": {"name": "b"}, "object": {"key": "population/../../etc/passwd"}}
            )

        errors = exc_info.value.errors()
        assert len(errors) == 1
        assert errors[0]["loc"] == ("object", "key")
        assert "path traversal" in errors[0]["msg"]

    @pytest.mark.parametrize(
        "invalid_detail, expected_loc",
        [
            ({"object": {"key": "k"}}, ("bucket",)),
            ({"bucket": {"name": ""}, "object": {"key": "k"}}, ("bucket", "name")),
            ({"bucket": {"name": "b"}, "object": {}}, ("object", "key")),
            ({"bucket": {"name": "b"}, "object": {"key": "k", "size": -1}}, ("object", "size")),
            ({"bucket": {"name": "b"}, "object": {"key": "k", "size": "big"}}, ("object", "size")),
        ],
    )
    def test_malformed_structure_raises_validation_error(self, invalid_detail, expected_loc):
        with pytest.raises(pydantic.ValidationError) as exc_info:
            ObjectCreatedDetail.model_validate(invalid_detail)

        assert expected_loc in [e["loc"] for e in exc_info.value.errors()]

    def test_pydantic_coerces_valid_types(self):
        parsed = ObjectCreatedDetail.model_validate(
            {"bucket": {"name": "b"}, "object": {"key": "population/a.csv", "size": "1234"}}
        )
        assert parsed.object.size == 1234


class TestProcessingResponse:
    def test_dump_of_skipped_response_has_no_output_fields_set(self):
        response = ProcessingResponse(
            req_id="r", bucket="b", key="k", status="skipped", msg="Skipped"
        )
        dumped = response.model_dump()

        assert dumped["status"] == "skipped"
        assert dumped["output_key"] is None
        assert dumped["rows"] is None

    def test_unknown_status_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ProcessingResponse(req_id="r", bucket="b", key="k", status="done", msg="")
