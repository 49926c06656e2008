"""
Passport and ticket uploads on local disk.

Files are checked for type and size before anything is written. Each
upload is stored as <upload_dir>/<owner_id>/<file_id><ext>, where the owner
is the booking draft id, next to a <file_id>.json record of its document
entry.
"""

import logging
import os
from pathlib import Path
from typing import Optional
import uuid

from pydantic import ValidationError
from werkzeug.utils import secure_filename

import config
from exceptions import StorageError, UploadRejectedError
from models import UploadedDocument

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    '.pdf': 'application/pdf',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
}
ALLOWED_MIME_TYPES = set(ALLOWED_EXTENSIONS.values())
DOCUMENT_KINDS = ('passport', 'ticket')
META_SUFFIX = '.json'


class LocalFileStorage:

    def __init__(self, upload_dir=None, base_url=None, max_bytes=None):
        self.upload_dir = Path(upload_dir or config.UPLOAD_DIR)
        self.base_url = (base_url or config.UPLOAD_BASE_URL).rstrip('/')
        self.max_bytes = max_bytes or config.MAX_UPLOAD_BYTES

    def validate(self, file_name: str, mime_type: str, size: int):
        """Raise UploadRejectedError unless the file is a PDF/JPEG/PNG within the size limit."""
        ext = os.path.splitext(file_name or '')[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise UploadRejectedError(f"File type {ext or '(none)'} is not accepted, use PDF, JPG or PNG")
        if mime_type and mime_type not in ALLOWED_MIME_TYPES:
            raise UploadRejectedError(f"Content type {mime_type} is not accepted")
        if size > self.max_bytes:
            raise UploadRejectedError(
                f"File is too large ({size // 1024} KB), the limit is {self.max_bytes // (1024 * 1024)} MB"
            )
        if size == 0:
            raise UploadRejectedError('File is empty')

    def upload(self, owner_id: str, file, kind: str) -> UploadedDocument:
        """
        Store an uploaded file (a werkzeug FileStorage or anything with
        `filename`, `mimetype` and `read`) and return its document entry.
        """
        if kind not in DOCUMENT_KINDS:
            raise UploadRejectedError(f"Unknown document kind: {kind}")
        owner = secure_filename(str(owner_id))
        if not owner:
            raise UploadRejectedError('Missing upload owner')

        file_name = secure_filename(file.filename or '') or 'document'
        # one byte past the limit marks oversize
        data = file.read(self.max_bytes + 1)
        ext = os.path.splitext(file_name)[1].lower()
        mime_type = file.mimetype or ALLOWED_EXTENSIONS.get(ext, '')
        self.validate(file_name, mime_type, len(data))

        file_id = str(uuid.uuid4())
        stored_name = f"{file_id}{ext}"
        target_dir = self.upload_dir / owner
        document = UploadedDocument(
            id=file_id,
            kind=kind,
            file_name=file_name,
            url=f"{self.base_url}/{owner}/{stored_name}",
            mime_type=mime_type,
            size=len(data),
        )
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / stored_name).write_bytes(data)
            (target_dir / f"{file_id}{META_SUFFIX}").write_text(document.model_dump_json(), encoding='utf-8')
        except OSError as e:
            logger.error(f"Could not store upload {file_name}: {e}", exc_info=True)
            raise StorageError('Could not store the file, please retry') from e

        logger.info(f"Stored {kind} upload {file_name} ({len(data)} bytes) for {owner}")
        return document

    def get(self, owner_id: str, file_id: str) -> Optional[UploadedDocument]:
        """
        The stored entry for an upload made by `owner_id`, or None when no
        such file exists under that owner. Kind, name, URL and size come
        from what was recorded at upload time, never from the caller.
        """
        owner = secure_filename(str(owner_id or ''))
        file_id = secure_filename(str(file_id or ''))
        if not owner or not file_id:
            return None
        meta = self.upload_dir / owner / f"{file_id}{META_SUFFIX}"
        blob = self._find(file_id, owner)
        if blob is None or not meta.is_file():
            return None
        try:
            return UploadedDocument.model_validate_json(meta.read_text(encoding='utf-8'))
        except (OSError, ValidationError) as e:
            logger.error(f"Unreadable upload record {meta}: {e}", exc_info=True)
            return None

    def _find(self, file_id: str, owner: str = '*') -> Optional[Path]:
        file_id = secure_filename(str(file_id))
        if not file_id or not self.upload_dir.exists():
            return None
        return next(
            (p for p in self.upload_dir.glob(f"{owner}/{file_id}.*") if p.suffix.lower() in ALLOWED_EXTENSIONS),
            None,
        )

    def delete(self, file_id: str) -> bool:
        path = self._find(file_id)
        if path is None:
            logger.warning(f"Upload {file_id} not found on disk")
            return False
        try:
            path.unlink()
            path.with_name(f"{path.stem}{META_SUFFIX}").unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Could not delete upload {file_id}: {e}", exc_info=True)
            raise StorageError('Could not delete the file, please retry') from e
        logger.info(f"Deleted upload {file_id}")
        return True
