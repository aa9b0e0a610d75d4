from __future__ import annotations

from flask import Blueprint, current_app, request, send_file

from app.issuetracker.audit import record_event
from app.issuetracker.db import db_session
from app.issuetracker.errors import ApiErrors, success_response
from app.issuetracker.modules.files.models import File
from app.issuetracker.modules.files.service import (
    delete_file,
    discard_stored_object,
    file_to_dict,
    list_issue_files,
    upload_file,
)
from app.issuetracker.modules.issues.api import get_issue_or_404, issue_rule_data
from app.issuetracker.rbac import check_authorization, is_admin, require_user
from app.issuetracker.storage import storage_from_config

bp = Blueprint("files", __name__)


def _get_file_or_404(s, file_id: int) -> File:
    f = s.get(File, file_id)
    if not f:
        raise ApiErrors.not_found("File")
    return f


# ---------- Upload ----------
@bp.post("/files/upload")
def files_upload():
    s = db_session()
    u = require_user()

    upload = request.files.get("file")
    if not upload or not upload.filename:
        raise ApiErrors.bad_request("No file provided")

    issue_id = None
    raw_issue_id = (request.form.get("issue_id") or "").strip()
    if raw_issue_id:
        try:
            issue_id = int(raw_issue_id)
        except ValueError as e:
            raise ApiErrors.bad_request("Invalid issue_id") from e
        issue = get_issue_or_404(s, issue_id)
        check_authorization(u, "issue", "view", issue_rule_data(issue))

    file_bytes = upload.read()
    max_bytes = int(current_app.config.get("MAX_ATTACHMENT_BYTES", 10 * 1024 * 1024))
    if len(file_bytes) > max_bytes:
        raise ApiErrors.bad_request(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    if not file_bytes:
        raise ApiErrors.bad_request("File is empty")

    content_type = (upload.mimetype or "application/octet-stream").strip()
    storage = storage_from_config(current_app.config)
    f = upload_file(s, storage, file_bytes, upload.filename, content_type, u, issue_id=issue_id)
    key = f.key
    try:
        s.commit()
    except Exception:
        s.rollback()
        discard_stored_object(storage, key)
        raise
    current_app.logger.info("File %s uploaded by user %s (issue_id=%s)", f.id, u.id, issue_id)
    return success_response(file_to_dict(f), 201, "File uploaded successfully")


# ---------- List ----------
@bp.get("/files/<int:issue_id>")
@bp.get("/issues/<int:issue_id>/files")
def files_for_issue(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "view", issue_rule_data(issue))
    return success_response([file_to_dict(f) for f in list_issue_files(s, issue.id)])


# ---------- Download ----------
@bp.get("/files/<int:file_id>/download")
def file_download(file_id: int):
    s = db_session()
    u = require_user()
    f = _get_file_or_404(s, file_id)
    if f.issue is not None:
        check_authorization(u, "issue", "view", issue_rule_data(f.issue))
    elif not (is_admin(u) or f.uploaded_by_id == u.id):
        raise ApiErrors.forbidden("You don't have permission to download this file")

    storage = storage_from_config(current_app.config)
    if not storage.exists(f.key):
        current_app.logger.error("Stored object missing for file %s (key=%s)", f.id, f.key)
        raise ApiErrors.not_found("File content")
    fobj = storage.open(f.key)

    record_event(
        s,
        actor=u,
        action="file.download",
        entity_type="File",
        entity_id=str(f.id),
        metadata={"issue_id": f.issue_id, "filename": f.original_name},
    )
    s.commit()

    return send_file(
        fobj,
        mimetype=f.mime_type,
        as_attachment=True,
        download_name=f.original_name,
        max_age=0,
    )


# ---------- Delete ----------
@bp.delete("/files/<int:file_id>")
def file_delete(file_id: int):
    s = db_session()
    u = require_user()
    if not is_admin(u):
        raise ApiErrors.forbidden("Only admins can delete files")
    f = _get_file_or_404(s, file_id)

    delete_file(s, storage_from_config(current_app.config), f, u)
    s.commit()
    return success_response(None, message="File deleted successfully")
