"""
Tests for file registration, status transitions and upload handling
"""

import io

import pandas as pd
import pytest

from xcel_dashboard.core.exceptions import InvalidInput, NotFound
from xcel_dashboard.models import FileStatus, FileType
from xcel_dashboard.services.file_registry import FileRegistry
from xcel_dashboard.services.upload_service import UploadService


class TestFileRegistry:
    """Status transitions and completed-only lookups"""

    def test_register_starts_processing(self, db_session):
        registry = FileRegistry(db_session)
        uploaded = registry.register("a.csv", "1_a.csv", "/tmp/1_a.csv", FileType.CSV, 10)

        assert uploaded.status == FileStatus.PROCESSING
        assert uploaded.headers == []
        assert uploaded.total_rows == 0

    def test_mark_parsed_completes_file(self, db_session):
        registry = FileRegistry(db_session)
        uploaded = registry.register("a.csv", "1_a.csv", "/tmp/1_a.csv", FileType.CSV, 10)

        parsed = registry.mark_parsed(uploaded.id, ["Name"], [{"Name": "x"}, {"Name": "y"}])

        assert parsed.is_completed
        assert parsed.headers == ["Name"]
        assert parsed.total_rows == 2
        assert parsed.total_columns == 1

    def test_mark_failed_records_reason(self, db_session):
        registry = FileRegistry(db_session)
        uploaded = registry.register("a.csv", "1_a.csv", "/tmp/1_a.csv", FileType.CSV, 10)

        failed = registry.mark_failed(uploaded.id, "No data found in file")

        assert failed.status == FileStatus.FAILED
        assert failed.error_message == "No data found in file"

    def test_get_unknown_file(self, db_session):
        with pytest.raises(NotFound):
            FileRegistry(db_session).get("missing")

    def test_get_completed_rejects_processing_file(self, db_session, make_file):
        pending = make_file("pending.xlsx", status=FileStatus.PROCESSING)

        with pytest.raises(InvalidInput):
            FileRegistry(db_session).get_completed(pending.id)

    def test_list_completed_excludes_other_statuses(self, db_session, make_file):
        done = make_file("done.xlsx")
        make_file("pending.xlsx", status=FileStatus.PROCESSING)
        make_file("broken.xlsx", status=FileStatus.FAILED)

        completed = FileRegistry(db_session).list_completed()

        assert [f.id for f in completed] == [done.id]
        assert len(FileRegistry(db_session).list_files()) == 3


class TestUploadService:
    """Store -> register -> parse pipeline"""

    def _csv(self, text):
        return text.encode("utf-8")

    def test_upload_csv(self, db_session, storage):
        content = self._csv("Region,Sales\nNorth,100\nSouth,250\n")

        uploaded = UploadService(db_session, storage).upload("sales.csv", content)

        assert uploaded.is_completed
        assert uploaded.file_type == FileType.CSV
        assert uploaded.headers == ["Region", "Sales"]
        assert uploaded.rows[0] == {"Region": "North", "Sales": "100"}
        assert (storage.root / uploaded.filename).exists()

    def test_upload_xlsx(self, db_session, storage):
        buffer = io.BytesIO()
        pd.DataFrame({"Product": ["A", "B"], "Units": [3, 4]}).to_excel(buffer, index=False)

        uploaded = UploadService(db_session, storage).upload("products.xlsx", buffer.getvalue())

        assert uploaded.is_completed
        assert uploaded.headers == ["Product", "Units"]
        assert uploaded.rows[1] == {"Product": "B", "Units": 4}

    def test_header_only_file_fails(self, db_session, storage):
        uploaded = UploadService(db_session, storage).upload("empty.csv", self._csv("A,B\n"))

        assert uploaded.status == FileStatus.FAILED
        assert uploaded.error_message == "No data found in file"

    def test_unsupported_extension_rejected(self, db_session, storage):
        with pytest.raises(InvalidInput):
            UploadService(db_session, storage).upload("notes.txt", b"hello")

        assert FileRegistry(db_session).list_files() == []

    def test_oversized_upload_rejected(self, db_session, storage, monkeypatch):
        from xcel_dashboard.config import settings
        monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 0)

        with pytest.raises(InvalidInput):
            UploadService(db_session, storage).upload("big.csv", self._csv("A\n1\n"))
