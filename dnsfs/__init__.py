"""In-memory inode tree filesystem with permission checks and request-level operations."""

__version__ = "0.1.0"
__all__ = ["inode", "permissions", "tree", "operations"]