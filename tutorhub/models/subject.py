"""Subject catalogue and the tutor <-> subject link table."""

import uuid

from tutorhub.extensions import db


class Subject(db.Model):
    __tablename__ = "subjects"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
        }

    def __repr__(self):
        return f"<Subject {self.name}>"


class TutorSubject(db.Model):
    __tablename__ = "tutor_subjects"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tutor_id = db.Column(
        db.String(36), db.ForeignKey("tutors.id"), nullable=False
    )
    subject_id = db.Column(
        db.String(36), db.ForeignKey("subjects.id"), nullable=False
    )
    proficiency_level = db.Column(db.String(50), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    tutor = db.relationship("Tutor", back_populates="subjects")
    subject = db.relationship("Subject")

    def __repr__(self):
        return f"<TutorSubject tutor={self.tutor_id} subject={self.subject_id}>"
