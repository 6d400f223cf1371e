"""
Local file storage adapter - Implements FileStorage protocol.

Uploaded documents live under a single uploads directory. A stored file
reference is either absolute or relative to that directory; references
resolving outside it are refused.
"""

import logging
from pathlib import Path

from src.domain.exceptions import FileDeletionFailed

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """
    Implements FileStorage protocol on the local filesystem.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, root: str | Path) -> None:
        """
        Initialize storage rooted at the uploads directory.

        Args:
            root: Uploads directory; every deletable file lives below it
        """
        self._root = Path(root).resolve()

    def resolve(self, path_ref: str) -> Path:
        """
        Map a stored file reference to a path inside the uploads directory.

        Raises:
            FileDeletionFailed: Reference is empty or escapes the uploads directory
        """
        if not path_ref:
            raise FileDeletionFailed("Empty file reference")
        path = Path(path_ref)
        # Relative references may be relative to the working directory or to the root.
        candidates = [path] if path.is_absolute() else [path, self._root / path]
        for candidate in candidates:
            resolved = candidate.resolve()
            if resolved.is_relative_to(self._root):
                return resolved
        logger.error("Refusing to delete file outside uploads directory: %s", path_ref)
        raise FileDeletionFailed(f"File is outside the uploads directory: {path_ref}")

    def delete(self, path_ref: str) -> None:
        """
        Delete a stored file. A file that is already gone is not an error.

        Raises:
            FileDeletionFailed: Invalid reference or filesystem error
        """
        path = self.resolve(path_ref)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise FileDeletionFailed(f"Could not delete {path_ref}: {exc}") from exc
        logger.debug("Deleted file %s", path)
