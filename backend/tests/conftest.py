"""
Pytest configuration and fixtures
"""
import os
import sys
import tempfile
from pathlib import Path
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Settings are read lazily, so the test environment must be in place before any insider import
_test_dir = tempfile.mkdtemp(prefix="insider-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_test_dir) / 'test.db'}"
os.environ["LOG_FILE_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["RAG_DOCS_DIR"] = str(Path(_test_dir) / "docs")
for _name in ("ANTHROPIC_API_KEY", "TTS_API_KEY"):
    os.environ.pop(_name, None)

from insider.core.config import get_settings  # noqa: E402
from insider.core.database import Base, get_engine, get_session_local, reset_engine  # noqa: E402
from insider.services.rag_service import reset_document_index  # noqa: E402

get_settings.cache_clear()
reset_engine()
reset_document_index()

import insider.models  # noqa: E402,F401


@pytest.fixture(scope="function")
def db() -> Session:
    """Create a database session on a fresh schema for every test"""
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = get_session_local()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session):
    """Create test client with database dependency override"""
    from fastapi.testclient import TestClient

    from insider.core.database import get_db
    from main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client, db):
    """
    Register and log in a user through the API.

    Returns a factory producing ``{"id", "username", "headers"}``; ``role``
    promotes the user after registration.
    """
    from insider.services.auth_service import AuthService

    def factory(username: str, role: str = None) -> dict:
        password = "correct-horse-battery"
        response = client.post("/api/auth/register", json={
            "username": username,
            "email": f"{username}@claudeinsider.com",
            "password": password,
        })
        assert response.status_code == 201, response.text
        user_id = response.json()["id"]

        if role:
            AuthService(db).set_role(UUID(user_id), role)

        response = client.post("/api/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        token = response.json()["token"]
        # Cookies would otherwise authenticate every later request as the last user
        client.cookies.clear()
        return {
            "id": user_id,
            "username": username,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return factory


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


@pytest.fixture
def moderator(make_user):
    return make_user("mod", role="moderator")


@pytest.fixture
def admin(make_user):
    return make_user("admin", role="admin")


@pytest.fixture
def docs_dir(tmp_path):
    """A small documentation tree with front matter"""
    root = tmp_path / "docs"
    (root / "getting-started").mkdir(parents=True)
    (root / "configuration").mkdir()
    (root / "getting-started" / "installation.mdx").write_text(
        "---\n"
        "title: Installation\n"
        "---\n"
        "import { Callout } from 'components'\n\n"
        "## Installing the CLI\n\n"
        "Install the command line tool with npm and run the login command to authenticate "
        "your terminal session against your account.\n\n"
        "## System requirements\n\n"
        "The tool supports macOS, Linux and Windows through WSL. A recent Node.js runtime "
        "is required before installation.\n",
        encoding="utf-8",
    )
    (root / "configuration" / "settings.md").write_text(
        "---\n"
        "title: Settings Files\n"
        "---\n"
        "## Permission rules\n\n"
        "Permission rules decide which tools may run without asking. Rules live in the "
        "settings file of the project or the user home directory.\n\n"
        "## Environment variables\n\n"
        "Environment variables override values from settings files and are useful for "
        "continuous integration pipelines and containers.\n\n"
        "## Tiny\n\n"
        "Too short.\n",
        encoding="utf-8",
    )
    (root / "configuration" / "notes.txt").write_text("ignored", encoding="utf-8")
    return root
