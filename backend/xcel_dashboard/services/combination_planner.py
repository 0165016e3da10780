"""
Combination Planner - preview, regenerate and confirm multi-file combinations

Combination is an append: member rows are stacked under the union of their
headers (first-seen order, same-named columns merged). On top of the base
columns the planner proposes derived columns: two provenance columns
(``Source_File`` and ``Combined_Key``) plus whatever the AI collaborator
suggests, restricted to row-wise operations the planner can compute itself.

Previews are ephemeral and live in an in-process ``PreviewStore``. Each
preview walks an explicit state machine::

    Idle -> PreviewPending -> PreviewReady -> Confirming -> Done
                  ^                |   \\                  \\
                  +--- regenerate -+    +-> Failed <--------+

Every preview/regenerate request takes a ticket from the preview's request
sequence; an AI response is applied only if its ticket is newer than the
version currently shown, so a slow stale response can never overwrite a
newer one.
"""

import enum
import itertools
import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from xcel_dashboard.config import settings
from xcel_dashboard.core.exceptions import (
    AIUnavailable,
    InvalidInput,
    NotFound,
    StorageFailure,
    ValidationError,
)
from xcel_dashboard.models.uploaded_file import FileType, UploadedFile
from xcel_dashboard.models.widget import WidgetType
from xcel_dashboard.services.ai_service import DERIVATION_OPS, INSIGHT_LISTS, AIService
from xcel_dashboard.services.column_analysis import (
    data_quality_score,
    empty_columns,
    is_empty,
    numeric_columns,
    to_number,
)
from xcel_dashboard.services.file_parser import write_xlsx
from xcel_dashboard.services.file_registry import FileRegistry
from xcel_dashboard.services.file_storage import FileStorage
from xcel_dashboard.services.function_resolver import FunctionResolver
from xcel_dashboard.services.widget_catalog import WidgetCatalog

logger = logging.getLogger(__name__)

SOURCE_FILE_OP = "source_file"
RECORD_KEY_OP = "record_key"
NUMERIC_OPS = {"sum", "difference", "product", "ratio"}
PAIR_OPS = {"difference", "ratio"}

_UNSAFE_FILENAME = re.compile(r"[^\w\- .()]+")


class CombinationState(str, enum.Enum):
    IDLE = "idle"
    PREVIEW_PENDING = "preview_pending"
    PREVIEW_READY = "preview_ready"
    CONFIRMING = "confirming"
    DONE = "done"
    FAILED = "failed"


TRANSITIONS = {
    CombinationState.IDLE: {CombinationState.PREVIEW_PENDING},
    CombinationState.PREVIEW_PENDING: {
        CombinationState.PREVIEW_PENDING,
        CombinationState.PREVIEW_READY,
        CombinationState.FAILED,
    },
    CombinationState.PREVIEW_READY: {CombinationState.PREVIEW_PENDING, CombinationState.CONFIRMING},
    CombinationState.CONFIRMING: {CombinationState.DONE, CombinationState.FAILED},
    CombinationState.FAILED: {
        CombinationState.PREVIEW_PENDING,
        CombinationState.PREVIEW_READY,
        CombinationState.CONFIRMING,
    },
    CombinationState.DONE: set(),
}


@dataclass
class DerivedColumn:
    """A column computed row by row from base columns"""
    name: str
    description: str
    operation: str
    columns: List[str] = field(default_factory=list)

    @property
    def calculation_method(self) -> str:
        if self.operation == SOURCE_FILE_OP:
            return "Direct mapping from file origin"
        if self.operation == RECORD_KEY_OP:
            return "Generated sequential ID"
        symbols = {"sum": " + ", "difference": " - ", "product": " * ", "ratio": " / ", "concat": " & "}
        return symbols[self.operation].join(self.columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "operation": self.operation,
            "columns": list(self.columns),
            "calculation_method": self.calculation_method,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DerivedColumn":
        return cls(
            name=str(data.get("name") or "").strip(),
            description=str(data.get("description") or ""),
            operation=str(data.get("operation") or "").strip().lower(),
            columns=[str(c) for c in (data.get("columns") or [])],
        )

    def compute(self, row: Dict[str, Any], source: str, index: int) -> Any:
        if self.operation == SOURCE_FILE_OP:
            return source
        if self.operation == RECORD_KEY_OP:
            return f"REC_{index}"
        if self.operation == "concat":
            parts = [str(row.get(c)) for c in self.columns if not is_empty(row.get(c))]
            return " ".join(parts) or None

        numbers = [to_number(row.get(c)) for c in self.columns]
        if self.operation == "sum":
            present = [n for n in numbers if n is not None]
            return round(sum(present), 4) if present else None
        if any(n is None for n in numbers):
            return None
        if self.operation == "difference":
            return round(numbers[0] - numbers[1], 4)
        if self.operation == "product":
            result = 1.0
            for n in numbers:
                result *= n
            return round(result, 4)
        if self.operation == "ratio":
            return round(numbers[0] / numbers[1], 4) if numbers[1] else None
        return None


@dataclass
class BaseSchema:
    """Unioned headers of the member files"""
    headers: List[str]
    provenance: Dict[str, List[str]]
    dropped: List[str]


@dataclass
class CombinationPreview:
    id: str
    file_ids: List[str]
    state: CombinationState = CombinationState.IDLE
    version: int = 0  # Ticket of the AI response currently shown
    request_seq: int = 0  # Last ticket handed out
    estimated_rows: int = 0
    base_headers: List[str] = field(default_factory=list)
    provenance: Dict[str, List[str]] = field(default_factory=dict)
    dropped_columns: List[str] = field(default_factory=list)
    combined_filename: str = ""
    filename_edited: bool = False
    derived_columns: List[DerivedColumn] = field(default_factory=list)
    optimizations: List[str] = field(default_factory=list)
    insights: Dict[str, List[str]] = field(default_factory=dict)
    data_quality_score: int = 0
    combined_data_preview: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    touched_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def estimated_columns(self) -> int:
        return len(self.base_headers) + len(self.derived_columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previewId": self.id,
            "version": self.version,
            "state": self.state.value,
            "selectedFiles": list(self.file_ids),
            "estimatedRows": self.estimated_rows,
            "estimatedColumns": self.estimated_columns,
            "combinedFileName": self.combined_filename,
            "columns": self.base_headers + [d.name for d in self.derived_columns],
            "sourceColumns": self.provenance,
            "newColumnsCreated": [d.to_dict() for d in self.derived_columns],
            "optimizationsMade": list(self.optimizations),
            "aiInsights": {key: list(self.insights.get(key, [])) for key in INSIGHT_LISTS},
            "dataQualityScore": self.data_quality_score,
            "combinedDataPreview": self.combined_data_preview,
            "error": self.error,
        }


class PreviewStore:
    """Thread-safe in-process registry of live previews.

    Previews untouched for ``max_age`` are expired, and once more than
    ``max_entries`` are held the least recently used ones go first. A preview
    that is being confirmed is never evicted.
    """

    def __init__(self, max_age: Optional[timedelta] = None, max_entries: Optional[int] = None):
        self._lock = threading.RLock()
        self._previews: Dict[str, CombinationPreview] = {}
        self.max_age = max_age or timedelta(minutes=settings.PREVIEW_TTL_MINUTES)
        self.max_entries = max_entries or settings.MAX_PREVIEWS

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def __len__(self) -> int:
        with self._lock:
            return len(self._previews)

    def add(self, preview: CombinationPreview):
        with self._lock:
            preview.touched_at = datetime.utcnow()
            self._previews[preview.id] = preview
            self.evict()

    def get(self, preview_id: str) -> CombinationPreview:
        with self._lock:
            self.evict()
            preview = self._previews.get(preview_id)
            if preview is not None:
                preview.touched_at = datetime.utcnow()
        if preview is None:
            raise NotFound(f"Combination preview {preview_id} not found or expired")
        return preview

    def evict(self) -> int:
        """Drop expired previews, then the least recently used beyond the cap"""
        with self._lock:
            cutoff = datetime.utcnow() - self.max_age
            evictable = [
                p for p in self._previews.values()
                if p.state != CombinationState.CONFIRMING
            ]
            expired = [p.id for p in evictable if p.touched_at < cutoff]
            for preview_id in expired:
                del self._previews[preview_id]

            overflow = len(self._previews) - self.max_entries
            if overflow > 0:
                remaining = sorted(
                    (p for p in evictable if p.id in self._previews),
                    key=lambda p: p.touched_at,
                )
                for preview in remaining[:overflow]:
                    del self._previews[preview.id]
                    expired.append(preview.id)

        if expired:
            logger.info(f"Evicted {len(expired)} combination previews")
        return len(expired)

    def latest_for(self, file_ids: List[str]) -> Optional[CombinationPreview]:
        key = sorted(file_ids)
        with self._lock:
            candidates = [
                p for p in self._previews.values()
                if sorted(p.file_ids) == key and p.version > 0
            ]
        return max(candidates, key=lambda p: p.created_at) if candidates else None

    def discard(self, preview_id: str):
        with self._lock:
            self._previews.pop(preview_id, None)


_preview_store = PreviewStore()


def get_preview_store() -> PreviewStore:
    return _preview_store


def transition(preview: CombinationPreview, state: CombinationState):
    if state not in TRANSITIONS[preview.state]:
        raise InvalidInput(
            f"Cannot move combination from {preview.state.value} to {state.value}"
        )
    preview.state = state


def default_filename() -> str:
    return f"Combined_Data_{datetime.utcnow().date().isoformat()}"


def clean_filename(name: Optional[str]) -> str:
    cleaned = _UNSAFE_FILENAME.sub("_", (name or "").strip())
    if cleaned.lower().endswith(".xlsx"):
        cleaned = cleaned[:-5]
    return cleaned.strip(" ._")


class CombinationPlanner:
    """Service orchestrating preview -> regenerate -> confirm"""

    def __init__(
        self,
        db: Session,
        ai_service: Optional[AIService] = None,
        store: Optional[PreviewStore] = None,
        storage: Optional[FileStorage] = None,
    ):
        self.db = db
        self.registry = FileRegistry(db)
        self.ai_service = ai_service
        self.store = store if store is not None else get_preview_store()
        self.storage = storage or FileStorage()
        self.resolver = FunctionResolver()

    # Member handling

    def _load_members(self, file_ids: List[str]) -> List[UploadedFile]:
        ids = list(dict.fromkeys(file_ids or []))
        if len(ids) < 2:
            raise InvalidInput("Please select at least 2 completed files to combine")
        return [self.registry.get_completed(file_id) for file_id in ids]

    @staticmethod
    def base_schema(files: List[UploadedFile]) -> BaseSchema:
        """Union of member headers with provenance, minus all-empty columns"""
        headers: List[str] = []
        provenance: Dict[str, List[str]] = {}
        for file in files:
            for header in file.headers:
                if header not in provenance:
                    headers.append(header)
                    provenance[header] = []
                provenance[header].append(file.original_filename)

        non_empty = set()
        for file in files:
            empty = set(empty_columns(file.headers, file.rows))
            non_empty.update(h for h in file.headers if h not in empty)
        dropped = [h for h in headers if h not in non_empty]

        kept = [h for h in headers if h not in dropped]
        return BaseSchema(
            headers=kept,
            provenance={h: provenance[h] for h in kept},
            dropped=dropped,
        )

    @staticmethod
    def iter_rows(
        files: List[UploadedFile],
        headers: List[str],
        derivations: List[DerivedColumn],
    ) -> Iterator[Dict[str, Any]]:
        """Stack member rows under ``headers``; missing cells become None"""
        index = 0
        for file in files:
            for row in file.rows:
                index += 1
                combined = {h: row.get(h) for h in headers}
                for derived in derivations:
                    combined[derived.name] = derived.compute(combined, file.original_filename, index)
                yield combined

    @staticmethod
    def provenance_columns(headers: List[str]) -> List[DerivedColumn]:
        taken = {h.lower() for h in headers}
        columns = []
        for name, op, description in (
            ("Source_File", SOURCE_FILE_OP, "Original file source for each record"),
            ("Combined_Key", RECORD_KEY_OP, "Unique identifier for combined records"),
        ):
            candidate = name
            suffix = 2
            while candidate.lower() in taken:
                candidate = f"{name}_{suffix}"
                suffix += 1
            taken.add(candidate.lower())
            columns.append(DerivedColumn(name=candidate, description=description, operation=op))
        return columns

    @staticmethod
    def check_derivation(
        derived: DerivedColumn,
        headers: List[str],
        numeric_headers: List[str],
        taken: set,
    ) -> Optional[str]:
        """Return why a derived column is unusable, or None if it is fine"""
        if not derived.name:
            return "derived column without a name"
        if derived.name.lower() in taken:
            return f"'{derived.name}' duplicates an existing column"
        if derived.operation in (SOURCE_FILE_OP, RECORD_KEY_OP):
            return None if not derived.columns else f"'{derived.name}' takes no input columns"
        if derived.operation not in DERIVATION_OPS:
            return f"'{derived.name}' uses unsupported operation '{derived.operation}'"

        missing = [c for c in derived.columns if c not in headers]
        if missing:
            return f"'{derived.name}' references unknown columns {missing}"
        if derived.operation in PAIR_OPS and len(derived.columns) != 2:
            return f"'{derived.name}' needs exactly 2 columns"
        if len(derived.columns) < 2:
            return f"'{derived.name}' needs at least 2 columns"
        if derived.operation in NUMERIC_OPS:
            non_numeric = [c for c in derived.columns if c not in numeric_headers]
            if non_numeric:
                return f"'{derived.name}' needs numeric columns, got {non_numeric}"
        return None

    def _ai_derivations(
        self,
        raw: Any,
        headers: List[str],
        numeric_headers: List[str],
        reserved: List[DerivedColumn],
    ) -> Tuple[List[DerivedColumn], List[str]]:
        taken = {h.lower() for h in headers} | {d.name.lower() for d in reserved}
        accepted = []
        skipped = []
        for item in raw if isinstance(raw, list) else []:
            if not isinstance(item, dict):
                continue
            derived = DerivedColumn.from_dict(item)
            if derived.operation in (SOURCE_FILE_OP, RECORD_KEY_OP):
                problem = f"'{derived.name}' uses a reserved operation"
            else:
                problem = self.check_derivation(derived, headers, numeric_headers, taken)
            if problem:
                skipped.append(f"Skipped AI-proposed column: {problem}")
                continue
            taken.add(derived.name.lower())
            accepted.append(derived)
        return accepted, skipped

    # AI step

    def _ask_ai(self, files: List[UploadedFile], schema: BaseSchema) -> Dict[str, Any]:
        if self.ai_service is None:
            raise AIUnavailable("AI provider is not configured", retryable=False)

        members = [
            {
                "filename": f.original_filename,
                "headers": f.headers,
                "total_rows": f.total_rows,
                "total_columns": f.total_columns,
                "sample_data": f.rows[:settings.PREVIEW_SAMPLE_ROWS],
            }
            for f in files
        ]
        all_rows = [row for f in files for row in f.rows]
        numeric_headers = numeric_columns(schema.headers, all_rows)
        return self.ai_service.combination_insights(members, schema.headers, numeric_headers)

    def _apply_ai(
        self,
        preview: CombinationPreview,
        files: List[UploadedFile],
        schema: BaseSchema,
        answer: Dict[str, Any],
    ):
        """Fold an AI answer into the preview. Caller holds the store lock."""
        all_rows = [row for f in files for row in f.rows]
        numeric_headers = numeric_columns(schema.headers, all_rows)

        builtins = self.provenance_columns(schema.headers)
        derived, skipped = self._ai_derivations(
            answer.get("new_columns"), schema.headers, numeric_headers, builtins
        )

        preview.derived_columns = builtins + derived
        preview.optimizations = (
            [f"Removed empty column '{h}'" for h in schema.dropped]
            + [
                f"Merged column '{h}' shared by {len(sources)} files"
                for h, sources in schema.provenance.items() if len(sources) > 1
            ]
            + [str(o) for o in answer.get("optimizations") or [] if o]
            + skipped
        )
        preview.insights = {
            key: [str(item) for item in (answer.get(key) or []) if item]
            for key in INSIGHT_LISTS
        }

        suggested = clean_filename(answer.get("suggested_filename"))
        if not preview.filename_edited:
            preview.combined_filename = suggested or preview.combined_filename or default_filename()

        preview.combined_data_preview = list(itertools.islice(
            self.iter_rows(files, schema.headers, preview.derived_columns),
            settings.PREVIEW_SAMPLE_ROWS,
        ))

    def _run_ai(self, preview: CombinationPreview, ticket: int, files: List[UploadedFile], schema: BaseSchema):
        try:
            answer = self._ask_ai(files, schema)
        except AIUnavailable as e:
            with self.store.lock:
                if ticket == preview.request_seq:
                    preview.error = e.message
                    transition(preview, CombinationState.FAILED)
            # The failed preview stays in the store so the client can regenerate it
            raise AIUnavailable(e.message, retryable=e.retryable, preview_id=preview.id) from e

        with self.store.lock:
            if ticket <= preview.version or preview.state in (CombinationState.CONFIRMING, CombinationState.DONE):
                logger.warning(
                    f"Discarding stale AI response for preview {preview.id} "
                    f"(ticket {ticket}, showing {preview.version}, state {preview.state.value})"
                )
                return
            self._apply_ai(preview, files, schema, answer)
            preview.version = ticket
            preview.error = None
            # A newer request may already have failed; this answer is still the freshest
            if ticket == preview.request_seq or preview.state == CombinationState.FAILED:
                transition(preview, CombinationState.PREVIEW_READY)

    # Operations

    def preview(self, file_ids: List[str]) -> CombinationPreview:
        """Estimate the combination and gather AI insights. Nothing is persisted."""
        files = self._load_members(file_ids)
        schema = self.base_schema(files)
        all_rows = [row for f in files for row in f.rows]

        preview = CombinationPreview(
            id=str(uuid.uuid4()),
            file_ids=[f.id for f in files],
            estimated_rows=sum(f.total_rows for f in files),
            base_headers=schema.headers,
            provenance=schema.provenance,
            dropped_columns=schema.dropped,
            combined_filename=default_filename(),
            derived_columns=self.provenance_columns(schema.headers),
            data_quality_score=data_quality_score(schema.headers, all_rows),
        )
        with self.store.lock:
            transition(preview, CombinationState.PREVIEW_PENDING)
            preview.request_seq += 1
            ticket = preview.request_seq
        self.store.add(preview)

        logger.info(
            f"Preview {preview.id}: {len(files)} files, ~{preview.estimated_rows} rows, "
            f"{len(schema.headers)} base columns"
        )
        self._run_ai(preview, ticket, files, schema)
        return preview

    def regenerate(self, preview_id: str) -> CombinationPreview:
        """Re-run only the AI step. Row estimate and base columns stay fixed."""
        preview = self.store.get(preview_id)
        files = self._load_members(preview.file_ids)
        with self.store.lock:
            transition(preview, CombinationState.PREVIEW_PENDING)
            preview.request_seq += 1
            ticket = preview.request_seq

        schema = BaseSchema(
            headers=preview.base_headers,
            provenance=preview.provenance,
            dropped=preview.dropped_columns,
        )

        self._run_ai(preview, ticket, files, schema)
        logger.info(f"Regenerated preview {preview.id} (version {preview.version})")
        return preview

    def rename(self, preview_id: str, filename: str) -> CombinationPreview:
        cleaned = clean_filename(filename)
        if not cleaned:
            raise ValidationError("Please enter a name for the combined file")
        preview = self.store.get(preview_id)
        with self.store.lock:
            if preview.state in (CombinationState.CONFIRMING, CombinationState.DONE):
                raise InvalidInput("Combination is already being confirmed")
            preview.combined_filename = cleaned
            preview.filename_edited = True
        return preview

    def confirm(
        self,
        file_ids: Optional[List[str]] = None,
        final_filename: Optional[str] = None,
        approved_derivations: Optional[List[Dict[str, Any]]] = None,
        preview_id: Optional[str] = None,
        ai_insights: Optional[Dict[str, Any]] = None,
    ) -> UploadedFile:
        """
        Materialize the combined dataset as a new completed file

        Args:
            file_ids: Member files; defaults to the preview's members
            final_filename: Name for the new file; defaults to the preview's
            approved_derivations: Derived columns to apply; defaults to the
                preview's derived columns (or the provenance columns only when
                no preview exists)
            preview_id: Preview being confirmed, if any
            ai_insights: Insights to store on the new file

        Raises:
            InvalidInput, ValidationError, StorageFailure
        """
        preview = None
        if preview_id:
            preview = self.store.get(preview_id)
            if file_ids and sorted(set(file_ids)) != sorted(preview.file_ids):
                raise InvalidInput("Selected files do not match the preview")
            file_ids = preview.file_ids
        elif file_ids:
            preview = self.store.latest_for(list(dict.fromkeys(file_ids)))

        files = self._load_members(file_ids or [])
        schema = self.base_schema(files)

        if preview is not None:
            with self.store.lock:
                if preview.state == CombinationState.FAILED and preview.version == 0:
                    raise InvalidInput("The preview has no AI results yet; regenerate it first")
                transition(preview, CombinationState.CONFIRMING)

        try:
            derivations = self._approved(schema, files, approved_derivations, preview)
            filename = clean_filename(final_filename) or (
                preview.combined_filename if preview else default_filename()
            )
            if ai_insights is None and preview is not None:
                ai_insights = {key: preview.insights.get(key, []) for key in INSIGHT_LISTS}
            combined = self._materialize(files, schema, derivations, filename, ai_insights)
        except Exception as e:
            if preview is not None:
                with self.store.lock:
                    preview.error = str(e)
                    transition(preview, CombinationState.FAILED)
            raise

        if preview is not None:
            with self.store.lock:
                transition(preview, CombinationState.DONE)
            self.store.discard(preview.id)
        return combined

    def _approved(
        self,
        schema: BaseSchema,
        files: List[UploadedFile],
        approved: Optional[List[Dict[str, Any]]],
        preview: Optional[CombinationPreview],
    ) -> List[DerivedColumn]:
        if approved is None:
            if preview is not None:
                return list(preview.derived_columns)
            return self.provenance_columns(schema.headers)

        all_rows = [row for f in files for row in f.rows]
        numeric_headers = numeric_columns(schema.headers, all_rows)
        taken = {h.lower() for h in schema.headers}
        derivations = []
        errors = []
        for item in approved:
            derived = item if isinstance(item, DerivedColumn) else DerivedColumn.from_dict(item)
            problem = self.check_derivation(derived, schema.headers, numeric_headers, taken)
            if problem:
                errors.append(problem)
                continue
            taken.add(derived.name.lower())
            derivations.append(derived)
        if errors:
            raise ValidationError(errors)
        return derivations

    def _materialize(
        self,
        files: List[UploadedFile],
        schema: BaseSchema,
        derivations: List[DerivedColumn],
        filename: str,
        ai_insights: Optional[Dict[str, Any]],
    ) -> UploadedFile:
        """Write the workbook, then register it and its widgets in one transaction"""
        headers = schema.headers + [d.name for d in derivations]
        rows = list(self.iter_rows(files, schema.headers, derivations))
        original_filename = f"{filename}.xlsx"

        path = None
        try:
            content = write_xlsx(headers, rows)
            path = self.storage.save(original_filename, content)

            combined = self.registry.register_completed(
                original_filename=original_filename,
                filename=path.name,
                file_path=str(path),
                file_type=FileType.XLSX,
                file_size=len(content),
                headers=headers,
                rows=rows,
                extra_data={
                    "combination_metadata": {
                        "source_files": [f.id for f in files],
                        "strategy": "append",
                        "new_columns_created": [d.to_dict() for d in derivations],
                        "removed_columns": schema.dropped,
                    }
                },
                ai_insights=ai_insights,
                commit=False,
            )
            self._create_placeholders(combined)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            if path is not None:
                self.storage.delete(str(path))
            logger.error(f"Failed to combine files {[f.id for f in files]}: {e}")
            raise StorageFailure(f"Error combining files: {e}", cause=e)

        self.db.refresh(combined)
        logger.info(
            f"Combined {len(files)} files into {combined.id}: "
            f"{combined.total_rows} rows, {combined.total_columns} columns"
        )
        return combined

    def _create_placeholders(self, combined: UploadedFile):
        catalog = WidgetCatalog(self.db)

        # count_rows is always offered last, so there is at least one option
        kpi = self.resolver.options(combined, WidgetType.KPI.value)[0]
        catalog.create_placeholder(
            combined, "Combined Data Overview", WidgetType.KPI,
            {"function": kpi.function, "column": kpi.columns[0] if kpi.columns else None},
            commit=False,
        )

        bar_options = self.resolver.options(combined, WidgetType.BAR_CHART.value)
        if bar_options:
            x_axis, y_axis = bar_options[0].columns
            catalog.create_placeholder(
                combined, "Combined Data Analysis", WidgetType.BAR_CHART,
                {"x_axis": x_axis, "y_axis": y_axis}, commit=False,
            )

        pie_options = self.resolver.options(combined, WidgetType.PIE_CHART.value)
        if pie_options:
            category, value = pie_options[0].columns
            catalog.create_placeholder(
                combined, "Data Distribution", WidgetType.PIE_CHART,
                {"category_column": category, "value_column": value}, commit=False,
            )

        catalog.create_placeholder(
            combined, "Combined Data Table", WidgetType.TABLE, {"columns": combined.headers}, commit=False
        )
