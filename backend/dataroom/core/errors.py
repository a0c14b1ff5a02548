"""Error taxonomy for workspace operations.

Every failure raised by the mutation engine or the sync coordinator derives
from WorkspaceError so callers can keep the workspace interactive after any
of them.
"""

from typing import List, Optional


class WorkspaceError(Exception):
    """Base class for all recoverable workspace failures."""


class ValidationError(WorkspaceError):
    """Raised for an empty or duplicate name."""


class NotFound(WorkspaceError):
    """Raised when a referenced id is absent from the snapshot."""

    def __init__(self, kind: str, entity_id: Optional[str]):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class Forbidden(WorkspaceError):
    """Raised when an operation targets a room's root folder."""


class RemoteWriteFailure(WorkspaceError):
    """Raised when one or more remote writes of a signed-in operation fail.

    The local snapshot is left untouched. ``errors`` holds every underlying
    exception collected from the concurrent writes.
    """

    def __init__(self, operation: str, errors: List[BaseException]):
        self.operation = operation
        self.errors = errors
        first = errors[0] if errors else None
        super().__init__(
            f"Remote write failed for {operation}: "
            f"{len(errors)} error(s), first: {first!r}"
        )


class PartialCascadeFailure(WorkspaceError):
    """Content-cache cleanup failed for some files during a delete.

    Only logged, never raised to callers: metadata deletion still completes.
    """

    def __init__(self, file_ids: List[str], errors: List[BaseException]):
        self.file_ids = file_ids
        self.errors = errors
        super().__init__(
            f"Failed to release cached content for {len(file_ids)} file(s): "
            f"{', '.join(file_ids)}"
        )
