"""
Error taxonomy for the asset import pipeline and the classification table that
turns any failure into one user-facing sentence.
"""
from typing import Any, Callable, Dict, List, Optional, Tuple


class AssetImportError(Exception):
    """Base class for failures the pipeline raises on purpose."""

    user_message = "The upload could not be processed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.user_message
        super().__init__(self.message)


class FileFormatError(AssetImportError):
    """The uploaded bytes could not be turned into rows."""

    user_message = "File format error. Check file format, encoding (use UTF-8), and ensure proper column headers."


class UnsupportedFileType(FileFormatError):
    user_message = "Unsupported file type. Please upload a CSV (.csv) or Excel (.xlsx, .xls) file."


class CorruptFile(FileFormatError):
    pass


class EmptyFile(FileFormatError):
    user_message = "File is empty or contains no data rows."


class DuplicateColumnHeaders(FileFormatError):
    user_message = "File has duplicate column headers. Rename or remove the repeated columns and re-upload."


class MappingValidationError(AssetImportError):
    """The column mapping is unusable for this file."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Column mappings invalid:\n" + "\n".join(self.errors))


class AssetValidationError(AssetImportError):
    """Aggregate of every row-level problem found in a batch."""

    def __init__(self, report: str, errors: List[Any], summary: Optional[Dict[str, int]] = None):
        self.errors = list(errors)
        self.summary = summary or {}
        super().__init__(report)


class StorageConstraintError(AssetImportError):
    """A unique or foreign-key constraint rejected the commit."""

    def __init__(self, constraint_detail: str = ""):
        self.constraint_detail = constraint_detail
        super().__init__(f"Storage constraint violated: {constraint_detail}".strip())


class InvalidJobTransition(Exception):
    """Raised when a job status change would break the job lifecycle."""

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Import job {job_id} cannot move from '{current}' to '{requested}'")


def _storage_constraint_message(exc: StorageConstraintError) -> str:
    detail = exc.constraint_detail.lower()
    if "foreign key" in detail or "parent_internal_id" in detail:
        return "Invalid parent reference found. Ensure all parent IDs exist in the file or database."
    if "external_id" in detail or "unique" in detail:
        return (
            "Duplicate asset IDs found. Another upload may have changed this hierarchy at the same time; "
            "re-upload the file."
        )
    return "Duplicate values found. Check that all required fields have unique values."


def _message_contains(*needles: str) -> Callable[[BaseException], bool]:
    def _match(exc: BaseException) -> bool:
        text = str(exc).lower()
        return any(needle in text for needle in needles)
    return _match


TIMEOUT_MESSAGE = "Processing timeout. Try uploading a smaller file or split large files into multiple uploads."
MEMORY_MESSAGE = "File too large to process. Split the file into smaller parts (recommended: under 5000 rows per file)."
PERMISSION_MESSAGE = "Permission denied. Contact your administrator to verify your upload permissions."
UNCLASSIFIED_MESSAGE = "Processing error. Contact support if this persists."


# Ordered: the first matching entry wins.
FAILURE_CLASSIFICATION: List[Tuple[Callable[[BaseException], bool], Callable[[BaseException], str]]] = [
    (lambda exc: isinstance(exc, MappingValidationError), lambda exc: exc.message),
    (lambda exc: isinstance(exc, FileFormatError), lambda exc: exc.user_message),
    (lambda exc: isinstance(exc, StorageConstraintError), _storage_constraint_message),
    (lambda exc: isinstance(exc, TimeoutError), lambda exc: TIMEOUT_MESSAGE),
    (lambda exc: isinstance(exc, MemoryError), lambda exc: MEMORY_MESSAGE),
    (lambda exc: isinstance(exc, PermissionError), lambda exc: PERMISSION_MESSAGE),
    (_message_contains("timeout", "timed out", "etimedout"), lambda exc: TIMEOUT_MESSAGE),
    (_message_contains("out of memory", "enomem"), lambda exc: MEMORY_MESSAGE),
    (_message_contains("permission denied", "access denied"), lambda exc: PERMISSION_MESSAGE),
]


def classify_failure(exc: BaseException) -> str:
    """Map a non-validation failure to one short, actionable sentence."""
    for matches, render in FAILURE_CLASSIFICATION:
        if matches(exc):
            return render(exc)
    return UNCLASSIFIED_MESSAGE
