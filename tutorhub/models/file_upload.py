"""Uploaded file record.

Files live in Supabase Storage (prod) or instance/uploads (dev); this
table records who uploaded what and why.
"""

import uuid

from tutorhub.extensions import db


class FileUpload(db.Model):
    __tablename__ = "file_uploads"

    PURPOSES = [
        "profile_avatar",
        "identity_verification",
        "education_certificate",
        "session_material",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    file_name = db.Column(db.String(255), nullable=False)     # original filename
    file_path = db.Column(db.String(500), nullable=False)     # path in bucket / on disk
    file_size = db.Column(db.Integer, nullable=True)          # bytes
    file_type = db.Column(db.String(100), nullable=True)      # e.g. image/png
    upload_purpose = db.Column(db.String(50), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    @property
    def is_image(self):
        return bool(self.file_type and self.file_type.startswith("image/"))

    def __repr__(self):
        return f"<FileUpload {self.file_name} ({self.upload_purpose})>"
