# Import every model so Alembic autogenerate sees the full schema.

from tutorhub.models.user import User, UserRole  # noqa: F401
from tutorhub.models.subject import Subject, TutorSubject  # noqa: F401
from tutorhub.models.tutor import Tutor  # noqa: F401
from tutorhub.models.session import TutoringSession  # noqa: F401
from tutorhub.models.payment import Payment  # noqa: F401
from tutorhub.models.message import Message  # noqa: F401
from tutorhub.models.file_upload import FileUpload  # noqa: F401
from tutorhub.models.audit import AuditEvent  # noqa: F401
from tutorhub.models.change_log import ChangeLogEntry  # noqa: F401
