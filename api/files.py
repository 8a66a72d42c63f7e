"""
Files blueprint. Every route requires a bearer access token and only ever
touches records owned by the caller.

Blob and metadata writes are not transactional with each other. Writes go
blob first, then metadata, then removal of any replaced blob, so a crash can
leave an orphaned blob but not a record pointing at a blob this service
deleted. Orphans are reclaimed by `flask sweep-orphans`.
"""
from __future__ import annotations

import logging
import math
import os
from datetime import datetime, timezone
from typing import Tuple

from flask import Blueprint, request, jsonify, abort, current_app, g, send_file
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import FileStorage

from models import storage
from models.stored_file import StoredFile
from models.schemas.stored_file import StoredFileOutSchema
from utils.blob_storage import BlobNotFoundError, get_blob_storage
from utils.decorators import jwt_required
from .errors import error_response

logger = logging.getLogger(__name__)

bp = Blueprint("files", __name__, url_prefix="/file")

file_out_schema = StoredFileOutSchema()
files_out_schema = StoredFileOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    """page is 1-based; bad or missing values fall back instead of failing."""
    default_size = current_app.config["DEFAULT_PAGE_SIZE"]
    try:
        page = int(request.args.get("page", "1"))
    except ValueError:
        page = 1
    try:
        page_size = int(request.args.get("list_size", str(default_size)))
    except ValueError:
        page_size = default_size
    if page < 1:
        page = 1
    if page_size < 1:
        page_size = default_size
    return page, page_size


def uploaded_file() -> FileStorage:
    """The multipart `file` field, checked against the mime allow-list."""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        abort(400, description="No file uploaded; send it in the multipart field 'file'")
    if upload.mimetype not in current_app.config["ALLOWED_MIME_TYPES"]:
        abort(400, description="Unsupported file format. Allowed: JPEG, PNG, PDF, DOCX")
    return upload


def get_owned_file(file_id: str) -> StoredFile:
    record = StoredFile.find(storage.get_session(), file_id)
    if not record:
        abort(404, description="File not found")
    if not record.is_owned_by(g.current_user_id):
        logger.warning("User %s denied access to file %s", g.current_user_id, file_id)
        abort(403, description="You do not have access to this file")
    return record


def _split_name(filename: str) -> Tuple[str, str]:
    name = os.path.basename(filename.replace("\\", "/"))
    return name, os.path.splitext(name)[1].lower()


def _commit_or_discard(blobs, path: str) -> None:
    """Commit metadata; if that fails the freshly written blob goes too."""
    try:
        storage.save()
    except SQLAlchemyError:
        logger.exception("Metadata commit failed, discarding blob %s", path)
        blobs.discard(path)
        raise


@bp.post("/upload")
@jwt_required()
def upload_file():
    """
    Upload a file (JPEG, PNG, PDF or DOCX)
    ---
    tags:
      - Files
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - in: formData
        name: file
        type: file
        required: true
    responses:
      201:
        description: Created
      400:
        description: No file or unsupported format
      401:
        description: Unauthorized
    """
    upload = uploaded_file()
    name, extension = _split_name(upload.filename)

    blobs = get_blob_storage()
    path = blobs.make_path(g.current_user_id, name)
    size = blobs.save(path, upload.stream)

    record = StoredFile(
        owner_id=g.current_user_id,
        name=name,
        extension=extension,
        mime_type=upload.mimetype,
        size=size,
        upload_date=datetime.now(timezone.utc),
        storage_path=path,
    )
    storage.new(record)
    _commit_or_discard(blobs, path)
    logger.info("User %s uploaded file %s (%s, %d bytes)", g.current_user_id, record.id, name, size)

    return jsonify({"data": file_out_schema.dump(record)}), 201


@bp.get("/list")
@jwt_required()
def list_files():
    """
    List the caller's files, newest first
    ---
    tags:
      - Files
    security:
      - Bearer: []
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: list_size
        type: integer
        default: 10
    responses:
      200:
        description: Paginated list of files
      401:
        description: Unauthorized
    """
    page, page_size = parse_pagination()
    rows, total = StoredFile.page_for_owner(storage.get_session(), g.current_user_id, page, page_size)

    return jsonify(
        {
            "data": files_out_schema.dump(rows),
            "meta": {
                "page": page,
                "page_size": page_size,
                "total": total,
                "total_pages": math.ceil(total / page_size),
            },
        }
    ), 200


@bp.get("/<file_id>")
@jwt_required()
def get_file(file_id: str):
    """
    File metadata
    ---
    tags:
      - Files
    security:
      - Bearer: []
    parameters:
      - in: path
        name: file_id
        type: string
        required: true
    responses:
      200:
        description: File found
      401:
        description: Unauthorized
      403:
        description: Not the owner
      404:
        description: Not found
    """
    record = get_owned_file(file_id)
    return jsonify({"data": file_out_schema.dump(record)}), 200


@bp.get("/<file_id>/download")
@jwt_required()
def download_file(file_id: str):
    """
    Download file contents
    ---
    tags:
      - Files
    security:
      - Bearer: []
    produces:
      - application/octet-stream
    parameters:
      - in: path
        name: file_id
        type: string
        required: true
    responses:
      200:
        description: File bytes
      401:
        description: Unauthorized
      403:
        description: Not the owner
      404:
        description: Not found, or the stored contents are missing
    """
    record = get_owned_file(file_id)
    try:
        fh = get_blob_storage().open(record.storage_path)
    except BlobNotFoundError:
        logger.error("Blob missing for file %s at %s", record.id, record.storage_path)
        return error_response("BLOB_MISSING", "File contents are missing on the server", 404)

    return send_file(
        fh,
        mimetype=record.mime_type,
        as_attachment=True,
        download_name=record.name,
    )


@bp.put("/update/<file_id>")
@jwt_required()
def update_file(file_id: str):
    """
    Replace a file's contents and metadata
    ---
    tags:
      - Files
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - in: path
        name: file_id
        type: string
        required: true
      - in: formData
        name: file
        type: file
        required: true
    responses:
      200:
        description: Updated
      400:
        description: No file or unsupported format
      401:
        description: Unauthorized
      403:
        description: Not the owner
      404:
        description: Not found
    """
    record = get_owned_file(file_id)
    upload = uploaded_file()
    name, extension = _split_name(upload.filename)

    blobs = get_blob_storage()
    old_path = record.storage_path
    new_path = blobs.make_path(record.owner_id, name)
    size = blobs.save(new_path, upload.stream)

    record.name = name
    record.extension = extension
    record.mime_type = upload.mimetype
    record.size = size
    record.upload_date = datetime.now(timezone.utc)
    record.storage_path = new_path
    storage.new(record)
    _commit_or_discard(blobs, new_path)

    blobs.discard(old_path)
    logger.info("User %s replaced file %s", g.current_user_id, record.id)

    return jsonify({"data": file_out_schema.dump(record)}), 200


@bp.delete("/delete/<file_id>")
@jwt_required()
def delete_file(file_id: str):
    """
    Delete a file and its stored contents
    ---
    tags:
      - Files
    security:
      - Bearer: []
    parameters:
      - in: path
        name: file_id
        type: string
        required: true
    responses:
      200:
        description: Deleted
      401:
        description: Unauthorized
      403:
        description: Not the owner
      404:
        description: Not found
    """
    record = get_owned_file(file_id)

    # blob first; if it cannot be removed the record still goes and the sweep reclaims it
    get_blob_storage().discard(record.storage_path)
    storage.delete(record)
    storage.save()
    logger.info("User %s deleted file %s", g.current_user_id, file_id)

    return jsonify({"message": "File deleted"}), 200
