"""Errors raised by the planning layer."""


class ValidationFailed(ValueError):
    """Field-level validation failed; errors maps field name → message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class AllocationRejected(ValidationFailed):
    """An allocation save was blocked by cell errors.

    Keys are an hour type id ("general" cell) or "hourTypeId-classId".
    """


class ImportFormatError(ValueError):
    """An import file is not valid JSON or does not match the export schema."""
