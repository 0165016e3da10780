"""
Tests for combination preview, regenerate and confirm
"""

from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from xcel_dashboard.core.exceptions import (
    AIUnavailable,
    InvalidInput,
    NotFound,
    StorageFailure,
    ValidationError,
)
from xcel_dashboard.models import FileStatus, UploadedFile, Widget, WidgetOrigin
from xcel_dashboard.services.combination_planner import (
    CombinationPlanner,
    CombinationState,
    DerivedColumn,
    PreviewStore,
)


def insights(filename="Customers_and_Regions", **extra):
    payload = {
        "suggested_filename": filename,
        "new_columns": [
            {
                "name": "Name_Region",
                "description": "Customer and region label",
                "operation": "concat",
                "columns": ["Name", "Region"],
            },
            {
                "name": "Broken",
                "description": "References a column that does not exist",
                "operation": "ratio",
                "columns": ["Sales", "Cost"],
            },
        ],
        "optimizations": ["Standardized customer names"],
        "data_insights": ["Sales are concentrated in a few customers"],
        "key_discoveries": ["Every customer appears in both files"],
        "business_opportunities": [],
        "data_quality_insights": ["Region is missing for sales rows"],
        "analytics_recommendations": ["Join on Name for per-region sales"],
    }
    payload.update(extra)
    return payload


@pytest.fixture
def members(make_file):
    """A: 100 rows [Name, Sales]; B: 50 rows [Name, Region]"""
    a = make_file(
        "a.xlsx",
        headers=["Name", "Sales"],
        rows=[{"Name": f"Customer {i}", "Sales": i * 10} for i in range(100)],
    )
    b = make_file(
        "b.xlsx",
        headers=["Name", "Region"],
        rows=[{"Name": f"Customer {i}", "Region": "North" if i % 2 else "South"} for i in range(50)],
    )
    return a, b


@pytest.fixture
def ai_service():
    service = Mock()
    service.combination_insights.return_value = insights()
    return service


@pytest.fixture
def planner(db_session, ai_service, storage):
    return CombinationPlanner(db_session, ai_service=ai_service, store=PreviewStore(), storage=storage)


class TestPreview:

    def test_estimates_rows_and_columns(self, planner, members):
        a, b = members

        preview = planner.preview([a.id, b.id])

        assert preview.state == CombinationState.PREVIEW_READY
        assert preview.version == 1
        assert preview.estimated_rows == 150
        assert preview.base_headers == ["Name", "Sales", "Region"]
        assert [d.name for d in preview.derived_columns] == ["Source_File", "Combined_Key", "Name_Region"]
        assert preview.estimated_columns == 6
        assert preview.estimated_columns >= 3

    def test_invalid_ai_columns_are_dropped_and_noted(self, planner, members):
        a, b = members

        preview = planner.preview([a.id, b.id])

        assert "Broken" not in [d.name for d in preview.derived_columns]
        assert any("Broken" in note for note in preview.optimizations)
        assert "Merged column 'Name' shared by 2 files" in preview.optimizations
        assert "Standardized customer names" in preview.optimizations

    def test_preview_payload(self, planner, members):
        a, b = members

        data = planner.preview([a.id, b.id]).to_dict()

        assert data["combinedFileName"] == "Customers_and_Regions"
        assert data["estimatedRows"] == 150
        assert data["estimatedColumns"] == 6
        assert data["aiInsights"]["business_opportunities"] == []
        assert data["sourceColumns"]["Name"] == ["a.xlsx", "b.xlsx"]
        assert len(data["combinedDataPreview"]) == 5
        assert data["combinedDataPreview"][0]["Source_File"] == "a.xlsx"
        assert data["combinedDataPreview"][0]["Combined_Key"] == "REC_1"

    def test_empty_columns_are_removed(self, planner, members, make_file):
        a, b = members
        c = make_file("c.xlsx", headers=["Name", "Notes"], rows=[{"Name": "x", "Notes": None}])

        preview = planner.preview([a.id, b.id, c.id])

        assert "Notes" not in preview.base_headers
        assert "Removed empty column 'Notes'" in preview.optimizations

    def test_needs_two_files(self, planner, members):
        a, b = members

        with pytest.raises(InvalidInput):
            planner.preview([a.id])
        with pytest.raises(InvalidInput):
            planner.preview([a.id, a.id])

    def test_rejects_non_completed_members(self, planner, members, make_file):
        a, b = members
        pending = make_file("pending.xlsx", status=FileStatus.PROCESSING)

        with pytest.raises(InvalidInput):
            planner.preview([a.id, pending.id])

    def test_ai_failure_surfaces(self, planner, ai_service, members, db_session):
        a, b = members
        ai_service.combination_insights.side_effect = AIUnavailable("AI request timed out, please retry")

        with pytest.raises(AIUnavailable):
            planner.preview([a.id, b.id])

        assert db_session.query(UploadedFile).count() == 2

    def test_failed_preview_can_be_regenerated(self, planner, ai_service, members):
        a, b = members
        ai_service.combination_insights.side_effect = AIUnavailable("AI request timed out, please retry")

        with pytest.raises(AIUnavailable) as exc_info:
            planner.preview([a.id, b.id])

        preview_id = exc_info.value.preview_id
        assert exc_info.value.to_dict()["previewId"] == preview_id
        assert planner.store.get(preview_id).state == CombinationState.FAILED

        ai_service.combination_insights.side_effect = None
        ai_service.combination_insights.return_value = insights()
        retried = planner.regenerate(preview_id)

        assert retried.state == CombinationState.PREVIEW_READY
        assert retried.estimated_columns == 6
        assert len(planner.store) == 1

    def test_without_ai_provider(self, db_session, members, storage):
        a, b = members
        planner = CombinationPlanner(db_session, store=PreviewStore(), storage=storage)

        with pytest.raises(AIUnavailable):
            planner.preview([a.id, b.id])


class TestRegenerate:

    def test_keeps_estimates_and_bumps_version(self, planner, ai_service, members):
        a, b = members
        preview = planner.preview([a.id, b.id])
        ai_service.combination_insights.return_value = insights(
            "Second_Take", new_columns=[], data_insights=["A different angle"]
        )

        regenerated = planner.regenerate(preview.id)

        assert regenerated.version == 2
        assert regenerated.estimated_rows == 150
        assert regenerated.base_headers == ["Name", "Sales", "Region"]
        assert regenerated.combined_filename == "Second_Take"
        assert regenerated.insights["data_insights"] == ["A different angle"]
        assert [d.name for d in regenerated.derived_columns] == ["Source_File", "Combined_Key"]

    def test_user_filename_survives_regenerate(self, planner, members):
        a, b = members
        preview = planner.preview([a.id, b.id])

        planner.rename(preview.id, "Q1 Customers.xlsx")
        regenerated = planner.regenerate(preview.id)

        assert regenerated.combined_filename == "Q1 Customers"

    def test_stale_response_is_discarded(self, planner, ai_service, members):
        a, b = members
        preview = planner.preview([a.id, b.id])
        answers = {"outer": insights("Stale_Name"), "inner": insights("Fresh_Name")}

        def overlapping(*args, **kwargs):
            # A second regenerate starts and finishes while the first is in flight
            ai_service.combination_insights.side_effect = lambda *a, **k: answers["inner"]
            planner.regenerate(preview.id)
            return answers["outer"]

        ai_service.combination_insights.side_effect = overlapping
        result = planner.regenerate(preview.id)

        assert result.version == 3
        assert result.combined_filename == "Fresh_Name"
        assert result.state == CombinationState.PREVIEW_READY

    def test_failed_regenerate_marks_preview_failed(self, planner, ai_service, members):
        a, b = members
        preview = planner.preview([a.id, b.id])
        ai_service.combination_insights.side_effect = AIUnavailable("AI request failed")

        with pytest.raises(AIUnavailable):
            planner.regenerate(preview.id)

        assert preview.state == CombinationState.FAILED
        assert preview.version == 1

    def test_older_answer_recovers_after_newest_fails(self, planner, ai_service, members):
        a, b = members
        preview = planner.preview([a.id, b.id])

        def overlapping(*args, **kwargs):
            # A newer regenerate starts and fails while this one is in flight
            ai_service.combination_insights.side_effect = AIUnavailable("AI request failed")
            with pytest.raises(AIUnavailable):
                planner.regenerate(preview.id)
            assert preview.state == CombinationState.FAILED
            return insights("Older_Answer")

        ai_service.combination_insights.side_effect = overlapping
        result = planner.regenerate(preview.id)

        assert result.version == 2
        assert result.combined_filename == "Older_Answer"
        assert result.error is None
        assert result.state == CombinationState.PREVIEW_READY

    def test_unknown_preview(self, planner):
        with pytest.raises(NotFound):
            planner.regenerate("missing")


class TestConfirm:

    def test_confirm_materializes_preview(self, planner, members, db_session, storage):
        a, b = members
        preview = planner.preview([a.id, b.id])
        estimated = preview.estimated_columns

        combined = planner.confirm(preview_id=preview.id)

        assert combined.is_completed
        assert combined.total_rows == 150
        assert combined.total_columns == estimated
        assert combined.original_filename == "Customers_and_Regions.xlsx"
        assert (storage.root / combined.filename).exists()
        assert preview.state == CombinationState.DONE

        rows = combined.rows
        assert rows[0]["Source_File"] == "a.xlsx"
        assert rows[0]["Region"] is None
        assert rows[120]["Source_File"] == "b.xlsx"
        assert rows[120]["Sales"] is None
        assert rows[120]["Name_Region"] == "Customer 20 South"
        assert rows[149]["Combined_Key"] == "REC_150"

        assert combined.ai_insights["key_discoveries"] == ["Every customer appears in both files"]
        metadata = combined.processed_data["combination_metadata"]
        assert metadata["source_files"] == [a.id, b.id]

    def test_confirm_creates_placeholder_widgets(self, planner, members, db_session):
        a, b = members
        combined = planner.confirm(preview_id=planner.preview([a.id, b.id]).id)

        widgets = db_session.query(Widget).filter(Widget.uploaded_file_id == combined.id).all()

        assert sorted(w.widget_type.value for w in widgets) == ["bar_chart", "kpi", "pie_chart", "table"]
        assert all(w.origin == WidgetOrigin.SYSTEM for w in widgets)
        kpi = next(w for w in widgets if w.widget_type.value == "kpi")
        assert kpi.widget_config["function"] == "sum"
        assert kpi.widget_config["column"] == "Sales"
        assert kpi.widget_config["value"] == 49500.0

    def test_confirm_with_renamed_file(self, planner, members):
        a, b = members
        preview = planner.preview([a.id, b.id])
        planner.rename(preview.id, "Q1 Customers")

        combined = planner.confirm(preview_id=preview.id)

        assert combined.original_filename == "Q1 Customers.xlsx"

    def test_confirm_without_preview_uses_provenance_columns(self, db_session, members, storage):
        a, b = members
        planner = CombinationPlanner(db_session, store=PreviewStore(), storage=storage)

        combined = planner.confirm([a.id, b.id], final_filename="Plain")

        assert combined.headers == ["Name", "Sales", "Region", "Source_File", "Combined_Key"]
        assert combined.total_rows == 150

    def test_confirm_rejects_invalid_approved_columns(self, planner, members, db_session):
        a, b = members

        with pytest.raises(ValidationError):
            planner.confirm(
                [a.id, b.id],
                approved_derivations=[{"name": "Bad", "operation": "difference", "columns": ["Name", "Sales"]}],
            )

        assert db_session.query(UploadedFile).count() == 2

    def test_confirm_mismatched_files(self, planner, members, make_file):
        a, b = members
        c = make_file("c.xlsx")
        preview = planner.preview([a.id, b.id])

        with pytest.raises(InvalidInput):
            planner.confirm([a.id, c.id], preview_id=preview.id)

    def test_confirm_after_failed_regenerate(self, planner, ai_service, members):
        a, b = members
        preview = planner.preview([a.id, b.id])
        ai_service.combination_insights.side_effect = AIUnavailable("AI request failed")
        with pytest.raises(AIUnavailable):
            planner.regenerate(preview.id)

        combined = planner.confirm(preview_id=preview.id)

        assert combined.total_columns == 6

    def test_storage_failure_leaves_nothing_behind(self, planner, members, db_session, storage, monkeypatch):
        a, b = members
        preview = planner.preview([a.id, b.id])

        def explode(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(
            "xcel_dashboard.services.combination_planner.WidgetCatalog.create_placeholder", explode
        )

        with pytest.raises(StorageFailure):
            planner.confirm(preview_id=preview.id)

        assert db_session.query(UploadedFile).count() == 2
        assert db_session.query(Widget).count() == 0
        assert list(storage.root.iterdir()) == []
        assert preview.state == CombinationState.FAILED


class TestPreviewStore:
    """Abandoned previews do not accumulate"""

    def test_oldest_previews_evicted_over_cap(self, db_session, ai_service, members, storage):
        a, b = members
        store = PreviewStore(max_entries=2)
        planner = CombinationPlanner(db_session, ai_service=ai_service, store=store, storage=storage)

        first = planner.preview([a.id, b.id])
        planner.preview([a.id, b.id])
        planner.preview([a.id, b.id])

        assert len(store) == 2
        with pytest.raises(NotFound):
            store.get(first.id)

    def test_idle_previews_expire(self, planner, members):
        a, b = members
        preview = planner.preview([a.id, b.id])
        preview.touched_at = datetime.utcnow() - timedelta(hours=2)

        with pytest.raises(NotFound):
            planner.regenerate(preview.id)
        assert len(planner.store) == 0

    def test_confirming_preview_is_kept(self, planner, members):
        a, b = members
        preview = planner.preview([a.id, b.id])
        preview.state = CombinationState.CONFIRMING
        preview.touched_at = datetime.utcnow() - timedelta(hours=2)

        assert planner.store.evict() == 0
        assert planner.store.get(preview.id) is preview

    def test_failed_previews_do_not_pile_up(self, db_session, ai_service, members, storage):
        a, b = members
        store = PreviewStore(max_entries=2)
        planner = CombinationPlanner(db_session, ai_service=ai_service, store=store, storage=storage)
        ai_service.combination_insights.side_effect = AIUnavailable("timeout")

        for _ in range(3):
            with pytest.raises(AIUnavailable):
                planner.preview([a.id, b.id])

        assert len(store) == 2


class TestDerivedColumn:

    def test_numeric_operations(self):
        row = {"Revenue": "1,000", "Cost": 400, "Units": 0}

        assert DerivedColumn("P", "", "difference", ["Revenue", "Cost"]).compute(row, "f", 1) == 600.0
        assert DerivedColumn("S", "", "sum", ["Revenue", "Cost"]).compute(row, "f", 1) == 1400.0
        assert DerivedColumn("M", "", "ratio", ["Cost", "Revenue"]).compute(row, "f", 1) == 0.4
        assert DerivedColumn("X", "", "product", ["Cost", "Units"]).compute(row, "f", 1) == 0.0

    def test_ratio_by_zero_is_empty(self):
        row = {"Cost": 400, "Units": 0}
        assert DerivedColumn("R", "", "ratio", ["Cost", "Units"]).compute(row, "f", 1) is None

    def test_provenance_names_avoid_collisions(self):
        columns = CombinationPlanner.provenance_columns(["Source_File", "Amount"])
        assert [c.name for c in columns] == ["Source_File_2", "Combined_Key"]
