from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.issuetracker.audit import record_event
from app.issuetracker.utils import isoformat, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.issuetracker.models import User
    from app.issuetracker.modules.files.models import File
    from app.issuetracker.storage import Storage

logger = logging.getLogger(__name__)


def build_file_storage_key(filename: str) -> str:
    """Random prefix keeps keys unique when two uploads share a name."""
    safe_filename = secure_filename(filename) or "file.bin"
    return f"{uuid.uuid4().hex}-{safe_filename}"


def upload_file(
    s: "Session",
    storage: "Storage",
    file_bytes: bytes,
    filename: str,
    content_type: str,
    user: "User",
    issue_id: int | None = None,
) -> "File":
    from app.issuetracker.modules.files.models import File

    key = build_file_storage_key(filename)
    storage.put_bytes(key, file_bytes, content_type=content_type)

    try:
        now = utcnow()
        f = File(
            filename=key,
            original_name=filename,
            mime_type=content_type,
            size=len(file_bytes),
            key=key,
            url=storage.public_url(key) or "",
            uploaded_by_id=user.id,
            issue_id=issue_id,
            created_at=now,
            updated_at=now,
        )
        s.add(f)
        s.flush()
        if not f.url:
            f.url = f"/api/files/{f.id}/download"

        record_event(
            s,
            actor=user,
            action="file.upload",
            entity_type="File",
            entity_id=str(f.id),
            metadata={"issue_id": issue_id, "filename": filename, "size": f.size},
        )
    except Exception:
        discard_stored_object(storage, key)
        raise
    return f


def discard_stored_object(storage: "Storage", key: str) -> None:
    """Drop an object whose record never made it to the database."""
    try:
        storage.delete(key)
    except Exception:
        logger.exception("Failed to discard orphaned upload %s", key)


def list_issue_files(s: "Session", issue_id: int) -> list["File"]:
    from app.issuetracker.modules.files.models import File

    return (
        s.query(File)
        .filter(File.issue_id == issue_id)
        .order_by(File.created_at.desc(), File.id.desc())
        .all()
    )


def delete_file(s: "Session", storage: "Storage", f: "File", user: "User") -> None:
    """Remove the stored object first, then the record."""
    storage.delete(f.key)
    record_event(
        s,
        actor=user,
        action="file.delete",
        entity_type="File",
        entity_id=str(f.id),
        metadata={"issue_id": f.issue_id, "filename": f.original_name},
    )
    s.delete(f)


def file_to_dict(f: "File") -> dict:
    uploader = f.uploaded_by
    return {
        "id": f.id,
        "filename": f.filename,
        "original_name": f.original_name,
        "mime_type": f.mime_type,
        "size": f.size,
        "key": f.key,
        "url": f.url,
        "issue_id": f.issue_id,
        "uploaded_by_id": f.uploaded_by_id,
        "uploaded_by": {"id": uploader.id, "name": uploader.name, "email": uploader.email} if uploader else None,
        "created_at": isoformat(f.created_at),
        "updated_at": isoformat(f.updated_at),
    }
