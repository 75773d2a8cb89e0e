"""Ingest pipeline: validation, fingerprinting, metadata and derivatives."""

from .exif_reader import read_metadata, resolve_dimensions
from .hasher import FINGERPRINT_ALGO, compute_fingerprint, hash_file, hash_stream, is_fingerprint
from .pipeline import IngestCoordinator, IngestResult, IngestStage, IngestStatus
from .thumbnailer import DerivativeGenerator
from .validation import ValidatedUpload, validate_upload

__all__ = [
    "FINGERPRINT_ALGO",
    "DerivativeGenerator",
    "IngestCoordinator",
    "IngestResult",
    "IngestStage",
    "IngestStatus",
    "ValidatedUpload",
    "compute_fingerprint",
    "hash_file",
    "hash_stream",
    "is_fingerprint",
    "read_metadata",
    "resolve_dimensions",
    "validate_upload",
]
