"""Storage service — file uploads to Supabase Storage (prod) or local disk (dev).

Buckets (must exist in the Supabase dashboard):
  avatars, documents, certificates, session-materials
Local fallback: instance/uploads/<bucket>/ directory.

Every stored file is recorded in file_uploads with its purpose.
"""

import logging
import os
import time

import requests
from flask import current_app

from tutorhub.errors import ValidationError
from tutorhub.extensions import db
from tutorhub.models.file_upload import FileUpload

logger = logging.getLogger(__name__)

# purpose -> bucket
BUCKETS = {
    "profile_avatar": "avatars",
    "identity_verification": "documents",
    "education_certificate": "certificates",
    "session_material": "session-materials",
}

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

# purpose -> allowed extensions
ALLOWED_EXTENSIONS = {
    "profile_avatar": IMAGE_EXTENSIONS,
    "identity_verification": IMAGE_EXTENSIONS | {".pdf"},
    "education_certificate": IMAGE_EXTENSIONS | {".pdf", ".doc", ".docx"},
    "session_material": IMAGE_EXTENSIONS | {".pdf", ".doc", ".docx", ".txt"},
}


def _get_supabase_config():
    """Return Supabase storage config if available, else None."""
    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_SERVICE_KEY")

    if url and key:
        return {"url": url.rstrip("/"), "key": key}
    return None


def is_image(filename, content_type=None):
    """True for image content types or common image extensions."""
    if content_type and content_type.startswith("image/"):
        return True
    ext = os.path.splitext(filename or "")[1].lower()
    return ext in IMAGE_EXTENSIONS


def validate_file(file, purpose):
    """Validate an uploaded file (from request.files) for a purpose.

    Returns (ok: bool, error: str|None).
    """
    if not file or not file.filename:
        return False, "No file selected."

    allowed = ALLOWED_EXTENSIONS.get(purpose)
    if allowed is None:
        return False, f"Unknown upload purpose '{purpose}'."

    ext = os.path.splitext(file.filename)[1].lower()
    if ext not in allowed:
        return False, (
            f"File type '{ext}' is not supported. "
            f"Accepted types: {', '.join(sorted(allowed))}"
        )

    # Check file size (read + seek back)
    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)

    max_mb = current_app.config.get("MAX_UPLOAD_MB", 10)
    if size > max_mb * 1024 * 1024:
        return False, f"File size must be less than {max_mb}MB"

    if size == 0:
        return False, "File is empty."

    return True, None


def build_path(purpose, user_id, filename, session_id=None):
    """Storage path inside the bucket.

    avatars:           <user_id>/<name>              (overwritten on re-upload)
    session materials: <session_id>/<ms>-<name>
    everything else:   <user_id>/<ms>-<name>
    """
    safe_name = os.path.basename(filename).replace(" ", "_")
    stamp = int(time.time() * 1000)
    if purpose == "profile_avatar":
        return f"{user_id}/{safe_name}"
    if purpose == "session_material" and session_id:
        return f"{session_id}/{stamp}-{safe_name}"
    return f"{user_id}/{stamp}-{safe_name}"


def store_upload(file, user_id, purpose, session_id=None):
    """Validate, upload and record a file.

    Returns (FileUpload row (flushed, not committed), public_url).

    Raises ValidationError for rejected files.
    """
    ok, error = validate_file(file, purpose)
    if not ok:
        raise ValidationError(error)

    bucket = BUCKETS[purpose]
    path = build_path(purpose, user_id, file.filename, session_id=session_id)

    file_data = file.read()
    content_type = file.content_type or "application/octet-stream"

    public_url = upload_bytes(
        bucket, path, file_data, content_type,
        upsert=(purpose == "profile_avatar"),
    )

    record = FileUpload(
        user_id=user_id,
        file_name=file.filename,
        file_path=f"{bucket}/{path}",
        file_size=len(file_data),
        file_type=content_type,
        upload_purpose=purpose,
    )
    db.session.add(record)
    db.session.flush()

    return record, public_url


def upload_bytes(bucket, path, data, content_type, upsert=False):
    """Upload raw bytes. Supabase first, local disk otherwise. Returns public URL."""
    supabase = _get_supabase_config()
    if supabase:
        return _upload_supabase(supabase, bucket, path, data, content_type, upsert)
    return _upload_local(bucket, path, data)


def _upload_supabase(config, bucket, path, data, content_type, upsert):
    """Upload to Supabase Storage. Returns public URL."""
    url = f"{config['url']}/storage/v1/object/{bucket}/{path}"

    headers = {
        "Authorization": f"Bearer {config['key']}",
        "Content-Type": content_type,
        "Cache-Control": "3600",
        "x-upsert": "true" if upsert else "false",
    }

    try:
        resp = requests.post(url, headers=headers, data=data, timeout=30)
        resp.raise_for_status()

        public_url = f"{config['url']}/storage/v1/object/public/{bucket}/{path}"
        logger.info(f"Uploaded to Supabase: {bucket}/{path}")
        return public_url

    except Exception as e:
        logger.error(f"Supabase upload failed: {e}")
        # Fall back to local
        return _upload_local(bucket, path, data)


def _upload_local(bucket, path, data):
    """Upload to local filesystem (dev fallback). Returns URL path."""
    filepath = os.path.join(current_app.instance_path, "uploads", bucket, path)
    os.makedirs(os.path.dirname(filepath), exist_ok=True)

    with open(filepath, "wb") as f:
        f.write(data)

    logger.info(f"Uploaded locally: {filepath}")
    # Return a URL path that our Flask app can serve
    return f"/uploads/{bucket}/{path}"
