"""Session-scoped file attachments.

Files are uploaded against a session id in one multipart batch; the
backend extracts their content and answers with a descriptor per file
plus a list of per-file errors. Descriptors are mirrored locally, keyed
by session, until removed or the session ends.

Removal is not optimistic: a descriptor leaves the local list only after
the backend confirms the removal.
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from src.cli.protocol import AttachedFile, TaurusClient, TaurusClientError, UploadResult
from src.engine.notices import NoticeBoard

logger = logging.getLogger(__name__)


class FileAttachmentPipeline:
    """Uploads, lists, and removes files for sessions."""

    def __init__(self, client: TaurusClient, notices: NoticeBoard) -> None:
        self._client = client
        self._notices = notices
        self._attachments: dict[str, list[AttachedFile]] = {}
        self.uploading = False

    def files(self, session_id: str) -> list[AttachedFile]:
        """Attached files for a session, in upload order. The list is a copy."""
        return list(self._attachments.get(session_id, []))

    def _merge(self, session_id: str, incoming: Sequence[AttachedFile]) -> None:
        current = self._attachments.setdefault(session_id, [])
        index = {f.id: i for i, f in enumerate(current)}
        for descriptor in incoming:
            if descriptor.id in index:
                current[index[descriptor.id]] = descriptor
            else:
                index[descriptor.id] = len(current)
                current.append(descriptor)

    async def upload(
        self, session_id: str, paths: Sequence[Path | str]
    ) -> UploadResult:
        """Upload a batch of local files to a session.

        Every descriptor the backend returns is kept, including files
        whose processing failed; their errors are reported separately so
        one bad file never hides or blocks the rest of the batch. A batch
        the backend rejects outright adds nothing.

        Args:
            session_id: Session to attach to. Must be non-empty.
            paths: Local files to send.

        Returns:
            The UploadResult (success False when nothing was added).
        """
        if not session_id:
            self._notices.error("Session ID is required for file upload")
            return UploadResult(success=False)

        existing: list[Path] = []
        for raw in paths:
            path = Path(raw).expanduser()
            if path.is_file():
                existing.append(path)
            else:
                self._notices.error(f"File not found: {raw}")
        if not existing:
            return UploadResult(success=False)

        self.uploading = True
        try:
            result = await self._client.upload_files(session_id, existing)
        except TaurusClientError as exc:
            logger.error("Error uploading files to %s: %s", session_id, exc.message)
            self._notices.error("Failed to upload files")
            return UploadResult(success=False, errors=[exc.message])
        finally:
            self.uploading = False

        if not result.success:
            logger.error("Upload to %s reported failure: %s", session_id, result.errors)
            self._notices.error("Failed to upload files")
            return UploadResult(success=False, errors=result.errors)

        self._merge(session_id, result.files)
        self._notices.success(f"Successfully uploaded {len(result.files)} file(s)")
        for descriptor in result.files:
            if descriptor.processing_error:
                self._notices.error(
                    f"{descriptor.original_name}: {descriptor.processing_error}"
                )
        for error in result.errors:
            self._notices.error(error)
        logger.info(
            "Uploaded %d file(s) to %s (%d error(s))",
            len(result.files), session_id, len(result.errors),
        )
        return result

    async def remove(self, session_id: str, file_id: str) -> bool:
        """Remove a file once the backend confirms it.

        Returns:
            True if the descriptor was removed locally.
        """
        try:
            await self._client.remove_file(session_id, file_id)
        except TaurusClientError as exc:
            logger.error("Error removing file %s: %s", file_id, exc.message)
            self._notices.error("Failed to remove file")
            return False

        current = self._attachments.get(session_id, [])
        self._attachments[session_id] = [f for f in current if f.id != file_id]
        self._notices.success("File removed")
        return True

    async def refresh(self, session_id: str) -> list[AttachedFile]:
        """Replace the local list with the backend's view of the session."""
        try:
            files = await self._client.list_session_files(session_id)
        except TaurusClientError as exc:
            logger.warning("Failed to list files for %s: %s", session_id, exc.message)
            self._notices.error("Failed to load attached files")
            return self.files(session_id)
        self._attachments[session_id] = list(files)
        return self.files(session_id)

    def forget(self, session_id: str) -> None:
        """Drop local descriptors for a session that ended."""
        self._attachments.pop(session_id, None)
