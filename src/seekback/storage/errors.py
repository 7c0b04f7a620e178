from __future__ import annotations


class StorageError(RuntimeError):
    """Raised when a statement against the samples database fails."""

    def __init__(self, operation: str, cause: BaseException | str) -> None:
        super().__init__(f"{operation}: {cause}")
        self.operation = operation


class SampleNotFoundError(StorageError):
    """Raised when no persisted row exists for a sample id."""

    def __init__(self, sample_id: str) -> None:
        super().__init__("select", f"sample not found: {sample_id}")
        self.sample_id = sample_id
