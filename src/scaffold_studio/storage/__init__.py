"""Storage abstractions for Scaffold Studio."""

from .chroma import ChromaEvent, ChromaStore, ChromaUnavailableError
from .files import ApiFileStore, FileStore, InvalidPathError, StoreError, normalize_path
from .models import CommandRunRecord, ProvisioningRecord

__all__ = [
    "ApiFileStore",
    "ChromaEvent",
    "ChromaStore",
    "ChromaUnavailableError",
    "CommandRunRecord",
    "FileStore",
    "InvalidPathError",
    "ProvisioningRecord",
    "StoreError",
    "normalize_path",
]
