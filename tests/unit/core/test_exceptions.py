"""
Unit tests for the engine exception hierarchy.
"""
import pytest

from pricelist_engine.core.exceptions import (
    EnhancementError,
    PricelistEngineError,
    TemplateConflictError,
    UnsupportedFormatError,
)


class TestPricelistEngineError:
    """Test base exception"""

    def test_component_prefix(self):
        error = PricelistEngineError("boom", component="store")

        assert str(error) == "[STORE] boom"
        assert error.message == "boom"

    def test_to_dict(self):
        cause = ValueError("bad value")
        error = PricelistEngineError("boom", component="store", details={"key": 1}, original_exception=cause)

        data = error.to_dict()

        assert data == {
            "error_type": "PricelistEngineError",
            "message": "boom",
            "component": "store",
            "details": {"key": 1},
            "original_exception": "bad value",
        }


class TestSubclasses:
    """Test component-specific exceptions"""

    def test_unsupported_format(self):
        error = UnsupportedFormatError("not a document", document_kind="fax")

        assert isinstance(error, PricelistEngineError)
        assert error.component == "extraction"
        assert error.details == {"document_kind": "fax"}

    def test_template_conflict_details(self):
        error = TemplateConflictError("lost race", record_id="t-1", expected_revision=2, actual_revision=3)

        assert error.component == "templates"
        assert error.details == {"record_id": "t-1", "expected_revision": 2, "actual_revision": 3}

    def test_template_conflict_omits_missing_revisions(self):
        error = TemplateConflictError("exists", record_id="t-1", actual_revision=0)

        assert error.details == {"record_id": "t-1", "actual_revision": 0}

    def test_enhancement_error_status(self):
        with pytest.raises(PricelistEngineError) as exc_info:
            raise EnhancementError("rate limited", status_code=429)

        assert exc_info.value.details["status_code"] == 429
        assert str(exc_info.value) == "[ENHANCEMENT] rate limited"
