"""Failure taxonomy for the reconciliation engine."""


class SyncError(Exception):
    """Base exception for workspace sync operations."""

    pass


class Unreachable(SyncError):
    """A store call failed on network, auth, or database error."""

    def __init__(self, collection: str, operation: str):
        super().__init__(f"Remote store unreachable during {operation} on '{collection}'")
        self.collection = collection
        self.operation = operation


class PreconditionFailed(SyncError):
    """A mutation was rejected before any state changed."""

    pass


class HasChildFolders(PreconditionFailed):
    """Raised when deleting a folder that still has child folders."""

    def __init__(self, folder_id: str, child_ids: list[str]):
        super().__init__(
            f"Folder {folder_id} has {len(child_ids)} child folder(s) and cannot be deleted"
        )
        self.folder_id = folder_id
        self.child_ids = child_ids


class LoadTimeout(SyncError):
    """The remote side of the initial load did not settle in time."""

    def __init__(self, timeout: float):
        super().__init__(f"Remote initial load did not settle within {timeout:.1f}s")
        self.timeout = timeout
