import os
import uuid

ALLOWED_MIME_TYPES = {"application/pdf", "text/csv", "text/plain"}
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_DOCUMENT_TYPE = "TRANSCRIPT"


class UploadRejected(Exception):
    """Upload refused before anything was written. Carries an HTTP status."""

    def __init__(self, error_code: str, message: str, status: int = 400):
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.status = status


def _stream_size(file_storage) -> int:
    stream = file_storage.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def _mime_type(file_storage) -> str:
    return (file_storage.mimetype or "").strip().lower()


def validate_upload(file_storage, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> int:
    """Raises UploadRejected for a missing, oversized or disallowed file; returns size."""
    if file_storage is None or not file_storage.filename:
        raise UploadRejected("NO_FILE", "No file uploaded")
    if _mime_type(file_storage) not in ALLOWED_MIME_TYPES:
        raise UploadRejected(
            "INVALID_FILE_TYPE",
            "Invalid file type. Only PDF, CSV, and TXT files are allowed.",
        )
    size = _stream_size(file_storage)
    if size > max_bytes:
        raise UploadRejected(
            "FILE_TOO_LARGE",
            f"File exceeds the {max_bytes // (1024 * 1024)} MB limit.",
            status=413,
        )
    return size


def save_upload(file_storage, upload_dir: str, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> dict:
    """
    Validate and write the file under ``upload_dir`` with a random name.

    Returns the document metadata fields (without owner or document type).
    A failed write may leave a partial file behind.
    """
    size = validate_upload(file_storage, max_bytes)
    os.makedirs(upload_dir, exist_ok=True)
    stored_name = uuid.uuid4().hex
    file_storage.save(os.path.join(upload_dir, stored_name))
    return {
        "filename": stored_name,
        "original_name": os.path.basename(file_storage.filename),
        "mime_type": _mime_type(file_storage),
        "size": size,
        "extracted_text": None,
    }
