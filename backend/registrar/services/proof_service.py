import logging
import os
from contextlib import contextmanager
from pathlib import Path

from registrar.config import settings
from registrar.errors import InvalidProofFile, ProofTooLarge
from registrar.utils.filesystem import ensure_upload_dirs, file_extension
from registrar.utils.hashing import sha256_bytes
from registrar.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


def check_proof_file(filename: str | None, size: int):
    ext = file_extension(filename)
    if ext not in settings.allowed_proof_extensions:
        allowed = ", ".join(sorted(settings.allowed_proof_extensions))
        raise InvalidProofFile(f"Unsupported file type {ext or '(none)'!r}; allowed: {allowed}")
    if size == 0:
        raise InvalidProofFile("Empty file")
    if size > settings.max_upload_bytes:
        raise ProofTooLarge(f"File too large (max {settings.max_upload_bytes} bytes)")


def _write_proof(request_id: int, filename: str | None, content: bytes) -> tuple[str, bool]:
    check_proof_file(filename, len(content))
    stored_name = (
        f"payment_{request_id}_{utcnow():%Y%m%d%H%M%S}_{sha256_bytes(content)[:8]}"
        f".{file_extension(filename)}"
    )

    proof_path = ensure_upload_dirs("payments") / stored_name
    # Same bytes uploaded twice within a second map to the same name
    if proof_path.exists():
        return f"/uploads/payments/{stored_name}", False
    proof_path.write_bytes(content)
    os.chmod(proof_path, 0o444)
    return f"/uploads/payments/{stored_name}", True


def store_payment_proof(request_id: int, filename: str | None, content: bytes) -> str:
    """Store a payment proof immutably. Returns the reference kept on the payment."""
    return _write_proof(request_id, filename, content)[0]


def discard_payment_proof(proof_ref: str):
    path = get_proof_full_path(proof_ref)
    path.unlink(missing_ok=True)
    logger.info("Discarded unreferenced payment proof %s", proof_ref)


@contextmanager
def staged_payment_proof(request_id: int, filename: str | None, content: bytes):
    """
    Store a proof for the duration of an upload.

    If the block raises, a file written by this call is removed again so no
    proof is left on disk without a payment pointing at it. A file that was
    already there belongs to an earlier upload and is kept.
    """
    proof_ref, created = _write_proof(request_id, filename, content)
    try:
        yield proof_ref
    except Exception:
        if created:
            discard_payment_proof(proof_ref)
        raise


def get_proof_full_path(proof_ref: str, data_path: Path | None = None) -> Path:
    return (data_path or settings.data_path) / proof_ref.lstrip("/")
