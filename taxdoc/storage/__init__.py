from taxdoc.storage.base import BlobNotFoundError, BlobStore, CopyHandle

__all__ = ["BlobNotFoundError", "BlobStore", "CopyHandle"]
