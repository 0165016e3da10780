"""
Shared fixtures: in-memory database, file factory and a scripted AI client
"""

import json
import os
import tempfile

# Settings are read at import time; keep tests off the developer database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="xcel-uploads-"))
os.environ.setdefault("AI_PROVIDER", "none")

import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from xcel_dashboard.core.database import Base
from xcel_dashboard.models import FileStatus, FileType, UploadedFile
from xcel_dashboard.services.ai_service import AIService
from xcel_dashboard.services.file_registry import FileRegistry
from xcel_dashboard.services.file_storage import FileStorage


@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "uploads")


@pytest.fixture
def make_file(db_session):
    """Create a completed (or other status) file from headers and row dicts"""

    def _make(name="sales.xlsx", headers=None, rows=None, status=FileStatus.COMPLETED):
        headers = headers if headers is not None else ["Region", "Sales"]
        rows = rows if rows is not None else [
            {"Region": "North", "Sales": 100},
            {"Region": "South", "Sales": 250},
            {"Region": "North", "Sales": 50},
        ]
        if status == FileStatus.COMPLETED:
            return FileRegistry(db_session).register_completed(
                original_filename=name,
                filename=name,
                file_path=f"/tmp/{name}",
                file_type=FileType.XLSX,
                file_size=1024,
                headers=headers,
                rows=rows,
            )

        uploaded = UploadedFile(
            original_filename=name,
            filename=name,
            file_path=f"/tmp/{name}",
            file_type=FileType.XLSX,
            file_size=1024,
            status=status,
        )
        db_session.add(uploaded)
        db_session.commit()
        return uploaded

    return _make


def ai_response(payload):
    """Chat completion response object carrying ``payload`` as JSON text"""
    message = Mock()
    message.content = payload if isinstance(payload, str) else json.dumps(payload)
    choice = Mock()
    choice.message = message
    response = Mock()
    response.choices = [choice]
    return response


@pytest.fixture
def make_ai_service():
    """AIService over a mock client answering with the given payloads in order"""

    def _make(*payloads):
        client = Mock()
        client.chat.completions.create.side_effect = [
            p if isinstance(p, Exception) else ai_response(p) for p in payloads
        ]
        return AIService(client=client, model="test-model")

    return _make
