"""Blob storage for originals and derived images."""

from .blob_store import DERIVATIVE_EXTENSION, DERIVATIVE_MIME_TYPE, ShardedBlobStore

__all__ = ["DERIVATIVE_EXTENSION", "DERIVATIVE_MIME_TYPE", "ShardedBlobStore"]
