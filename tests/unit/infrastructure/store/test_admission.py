"""Unit tests for the admission denial wire format."""

import orjson
import pytest
import pytest_check

from src.core.exceptions import (
    DuplicateNameError,
    NotFoundError,
    OrphanedReferenceError,
    ValidationError,
)
from src.infrastructure.store.admission import (
    decode_validation_error,
    denial_message,
    encode_validation_error,
)


@pytest.mark.unit
class TestEncodeValidationError:
    """Test the JSON payload embedded in denials."""

    def test_duplicate_name(self) -> None:
        """Verify duplicate names are tagged with their type."""
        payload = orjson.loads(encode_validation_error(DuplicateNameError("taken")))

        assert payload == {"validationErrorType": "DuplicateNameError", "message": "taken"}

    def test_other_errors_are_generic_validation(self) -> None:
        """Verify errors without a dedicated type fall back to ValidationError."""
        payload = orjson.loads(encode_validation_error(NotFoundError("gone")))

        assert payload["validationErrorType"] == "ValidationError"

    def test_denial_message_names_webhook(self) -> None:
        """Verify the denial reads like the store's own webhook message."""
        message = denial_message(OrphanedReferenceError("no parent"))

        with pytest_check.check:
            assert message.startswith('admission webhook "stratus.validation" denied the request: ')
        with pytest_check.check:
            assert message.endswith(
                '{"validationErrorType":"OrphanedReferenceError","message":"no parent"}'
            )


@pytest.mark.unit
class TestDecodeValidationError:
    """Test recovery of rejections from store messages."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (DuplicateNameError("Space 'dev' already exists."), DuplicateNameError),
            (OrphanedReferenceError("Organization 'x' does not exist"), OrphanedReferenceError),
            (ValidationError("bad"), ValidationError),
        ],
    )
    def test_decodes_denials(self, error: Exception, expected: type) -> None:
        """Verify each encoded type is recovered with its message."""
        decoded = decode_validation_error(denial_message(error))  # type: ignore[arg-type]

        assert type(decoded) is expected
        assert decoded.message == error.message  # type: ignore[attr-defined]

    @pytest.mark.parametrize(
        "message",
        [
            "",
            "namespaces \"x\" not found",
            "something {not json",
            "list: [1, 2]",
            '{"validationErrorType": "Exploit", "message": "x"}',
            '{"message": "no type"}',
        ],
    )
    def test_ignores_other_messages(self, message: str) -> None:
        """Verify ordinary store messages are not mistaken for denials."""
        assert decode_validation_error(message) is None
