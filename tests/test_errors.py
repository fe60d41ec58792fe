"""Tests for the exception hierarchy."""

from errors import ConflictError, InvalidArgumentError, NotFoundError, TrackingError


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_tracking_error_is_exception(self) -> None:
        assert isinstance(TrackingError("test"), Exception)

    def test_subclasses(self) -> None:
        for cls in (NotFoundError, ConflictError, InvalidArgumentError):
            assert isinstance(cls("test"), TrackingError)

    def test_exception_message(self) -> None:
        err = NotFoundError("Invoice 123 not found")
        assert str(err) == "Invoice 123 not found"
