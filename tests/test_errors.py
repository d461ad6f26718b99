from levelmerge import errors
from levelmerge.errors import FatalMergeError, MergeError, fatal_error


def test_fatal_error_carries_code_and_context():
    err = fatal_error("required collections are absent", {"collections": ["x"]})
    assert isinstance(err, FatalMergeError)
    assert err.to_dict() == {
        "code": errors.E_FATAL,
        "message": "required collections are absent",
        "context": {"collections": ["x"]},
    }


def test_exported_codes_match_error_taxonomy():
    codes = {name for name in errors.__all__ if name.startswith("E_")}
    assert codes == {
        "E_EMPTY_RESOURCE",
        "E_MODEL_MISSING",
        "E_MISSING_SOURCE",
        "E_NULL",
        "E_REF",
        "E_DUP",
        "E_SIZE",
        "E_FATAL",
        "E_CONFIG",
        "E_FORMAT",
    }
    assert all(hasattr(errors, name) for name in errors.__all__)


def test_merge_error_context_defaults_to_empty():
    assert MergeError("E_REF", "dangling").to_dict()["context"] == {}
