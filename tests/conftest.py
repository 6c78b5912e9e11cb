"""Shared test fixtures for the TutorHub test suite.

Provides:
- app: Flask app configured for testing (file-backed SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: learner, approved tutor, admin, subject and one scheduled session
- login: helper that logs the test client in as a seeded user
- extra_app: factory for a second app (own engine) on a SQLite file
"""

from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.security import generate_password_hash

from tutorhub import create_app, realtime
from tutorhub.extensions import db as _db
from tutorhub.models.user import User
from tutorhub.models.subject import Subject, TutorSubject
from tutorhub.models.tutor import Tutor
from tutorhub.models.session import TutoringSession

PASSWORD = "password123"


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application configured for testing.

    The database is a real file so that separate connections (the change
    feed listener, other processes) see only committed data.
    """
    db_path = tmp_path_factory.mktemp("db") / "tutorhub.db"
    app = create_app("testing", {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}"})
    yield app
    realtime.stop_listener(app)


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
    # Ids restart with the next schema, so the feed cursor must too.
    realtime.stop_listener(app)


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def make_user(email, first_name, last_name, *roles):
    user = User(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        first_name=first_name,
        last_name=last_name,
    )
    for role in roles:
        user.grant_role(role)
    _db.session.add(user)
    _db.session.flush()
    return user


def seed_records():
    """Seed the current app's database with an admin, an approved tutor,
    a learner, an outsider, one subject and one scheduled session between
    tutor and learner.

    Returns a dict of objects and plain ids.
    """
    admin = make_user("admin@tutorhub.local", "Ada", "Admin", "admin")
    tutor_user = make_user("tutor@tutorhub.local", "Theo", "Tutor", "learner", "tutor")
    learner = make_user("learner@tutorhub.local", "Lena", "Learner", "learner")
    outsider = make_user("outsider@tutorhub.local", "Oscar", "Outsider", "learner")

    subject = Subject(name="Algebra", category="Mathematics")
    _db.session.add(subject)
    _db.session.flush()

    tutor = Tutor(
        user_id=tutor_user.id,
        status="approved",
        hourly_rate=45,
        education="MSc Mathematics",
        experience_years=5,
        languages=["English"],
        approved_at=datetime.now(timezone.utc),
        approved_by=admin.id,
    )
    tutor.subjects = [TutorSubject(subject_id=subject.id, proficiency_level="expert")]
    _db.session.add(tutor)

    start = datetime.now(timezone.utc) + timedelta(days=1)
    session = TutoringSession(
        tutor_id=tutor_user.id,
        learner_id=learner.id,
        subject_id=subject.id,
        title="Algebra basics",
        scheduled_start=start,
        scheduled_end=start + timedelta(hours=1),
        status="scheduled",
    )
    _db.session.add(session)
    _db.session.commit()

    return {
        "admin": admin,
        "admin_id": admin.id,
        "tutor_user": tutor_user,
        "tutor_user_id": tutor_user.id,
        "tutor": tutor,
        "tutor_id": tutor.id,
        "learner": learner,
        "learner_id": learner.id,
        "outsider_id": outsider.id,
        "subject": subject,
        "subject_id": subject.id,
        "session": session,
        "session_id": session.id,
    }


@pytest.fixture
def seed_data(app, db_session):
    """Seeded records in the main test database (see seed_records)."""
    return seed_records()


@pytest.fixture
def extra_app(tmp_path):
    """Factory for another app with its own engine and pool.

    extra_app(db_path=None, **config) returns an app bound to `db_path`
    (a fresh file under tmp_path by default). Engines are disposed and
    listeners stopped afterwards.
    """
    created = []

    def _make(db_path=None, **config):
        path = db_path or tmp_path / f"extra-{len(created)}.db"
        config.setdefault("SQLALCHEMY_DATABASE_URI", f"sqlite:///{path}")
        other = create_app("testing", config)
        created.append(other)
        return other

    yield _make

    for other in created:
        realtime.stop_listener(other)
        with other.app_context():
            _db.session.remove()
            _db.engine.dispose()


@pytest.fixture
def login(client):
    """Return a helper that logs the client in by email."""

    def _login(email, password=PASSWORD):
        return client.post(
            "/auth/login",
            json={"email": email, "password": password},
        )

    return _login
