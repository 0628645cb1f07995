"""Flat export and import of history entries.

An exported row carries the identifying fields of an entry plus, on
request, its performance, feedback and context. JSON exports are a list of
rows; CSV exports use the same column names with tags joined by ``;`` and
the context encoded as a JSON string.
"""

import csv
import io
import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ErrorCodes, ImportFormatError
from ..models import QueryContext
from .models import (
    ExecutionPerformance,
    ExportOptions,
    HistoryFeedback,
    HistoryMetadata,
    OptimizationHistoryEntry,
)

_CONTEXT_ADAPTER = TypeAdapter(QueryContext)

BASE_COLUMNS = [
    "id",
    "timestamp",
    "connection_id",
    "database",
    "original_query",
    "optimized_query",
    "tags",
    "query_type",
    "complexity",
    "estimated_benefit",
    "actual_benefit",
]
PERFORMANCE_COLUMNS = [
    "original_execution_time",
    "optimized_execution_time",
    "performance_gain",
    "success",
]
FEEDBACK_COLUMNS = ["user_rating", "helpful", "comments"]
CONTEXT_COLUMNS = ["context"]


class HistoryRecord(BaseModel):
    """Validated form of one imported row.

    The identifying fields are required; everything else falls back to the
    defaults of a freshly recorded entry.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    timestamp: datetime
    connection_id: str = Field(min_length=1)
    database: Optional[str] = None
    original_query: str = Field(min_length=1)
    optimized_query: str = Field(min_length=1)
    tags: List[str] = Field(default_factory=list)
    query_type: str = "OTHER"
    complexity: float = 0.0
    estimated_benefit: float = 0.0
    actual_benefit: float = 0.0
    original_execution_time: Optional[float] = None
    optimized_execution_time: Optional[float] = None
    performance_gain: Optional[float] = None
    success: Optional[bool] = None
    user_rating: Optional[int] = Field(None, ge=1, le=5)
    helpful: Optional[bool] = None
    comments: Optional[str] = None
    context: Optional[QueryContext] = None

    @field_validator("*", mode="before")
    @classmethod
    def empty_cell_as_missing(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [tag for tag in value.split(";") if tag]
        return value

    @field_validator("context", mode="before")
    @classmethod
    def decode_context(cls, value: Any) -> Any:
        if isinstance(value, str) and value:
            return json.loads(value)
        return value

    def to_entry(self) -> OptimizationHistoryEntry:
        performance = ExecutionPerformance()
        recorded = self.performance_gain is not None or self.success is not None
        if recorded:
            performance = ExecutionPerformance(
                original_execution_time=self.original_execution_time or 0.0,
                optimized_execution_time=self.optimized_execution_time or 0.0,
                performance_gain=self.performance_gain or 0.0,
                success=bool(self.success),
            )

        feedback = None
        if self.user_rating is not None:
            feedback = HistoryFeedback(
                rating=self.user_rating,
                helpful=bool(self.helpful),
                comments=self.comments,
                timestamp=self.timestamp,
            )

        return OptimizationHistoryEntry(
            id=self.id,
            timestamp=self.timestamp,
            connection_id=self.connection_id,
            database=self.database or "",
            original_query=self.original_query,
            optimized_query=self.optimized_query,
            metadata=HistoryMetadata(
                query_type=self.query_type,
                complexity=self.complexity,
                optimization_techniques=[
                    tag.split(":", 1)[1] for tag in self.tags if tag.startswith("technique:")
                ],
                estimated_benefit=self.estimated_benefit,
                actual_benefit=self.actual_benefit,
            ),
            context=self.context or QueryContext(),
            performance=performance,
            performance_recorded=recorded,
            user_feedback=feedback,
            tags=list(self.tags),
        )


def columns_for(options: ExportOptions) -> List[str]:
    columns = list(BASE_COLUMNS)
    if options.include_performance:
        columns += PERFORMANCE_COLUMNS
    if options.include_feedback:
        columns += FEEDBACK_COLUMNS
    if options.include_context:
        columns += CONTEXT_COLUMNS
    return columns


def serialize_entry(entry: OptimizationHistoryEntry, options: ExportOptions) -> Dict[str, Any]:
    """Flatten an entry into an export row."""
    row: Dict[str, Any] = {
        "id": entry.id,
        "timestamp": entry.timestamp.isoformat(),
        "connection_id": entry.connection_id,
        "database": entry.database,
        "original_query": entry.original_query,
        "optimized_query": entry.optimized_query,
        "tags": ";".join(entry.tags),
        "query_type": entry.metadata.query_type,
        "complexity": entry.metadata.complexity,
        "estimated_benefit": entry.metadata.estimated_benefit,
        "actual_benefit": entry.metadata.actual_benefit,
    }

    if options.include_performance:
        row.update({
            "original_execution_time": entry.performance.original_execution_time,
            "optimized_execution_time": entry.performance.optimized_execution_time,
            "performance_gain": entry.performance.performance_gain,
            "success": entry.performance.success,
        })

    if options.include_feedback and entry.user_feedback is not None:
        row.update({
            "user_rating": entry.user_feedback.rating,
            "helpful": entry.user_feedback.helpful,
            "comments": entry.user_feedback.comments or "",
        })

    if options.include_context:
        row["context"] = _CONTEXT_ADAPTER.dump_python(entry.context, mode="json")

    return row


def _csv_cell(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return value


def to_json(rows: List[Dict[str, Any]]) -> str:
    return json.dumps(rows, indent=2)


def to_csv(rows: List[Dict[str, Any]], columns: List[str]) -> str:
    """Render rows as CSV; cells of columns a row lacks are left empty."""
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, restval="", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: _csv_cell(value) for key, value in row.items()})
    return buffer.getvalue()


def parse_rows(data: str, format: str) -> List[Any]:
    """Decode an export payload into raw rows.

    Raises:
        ImportFormatError: If the format is unknown or the payload cannot be
            decoded at all
    """
    if format == "json":
        try:
            rows = json.loads(data)
        except json.JSONDecodeError as e:
            raise ImportFormatError(
                "History import payload is not valid JSON",
                code=ErrorCodes.MALFORMED_PAYLOAD,
                context={"format": format, "position": e.pos},
                cause=e,
            ) from e
        if not isinstance(rows, list):
            raise ImportFormatError(
                "History import payload must be a list of entries",
                code=ErrorCodes.MALFORMED_PAYLOAD,
                context={"format": format, "type": type(rows).__name__},
            )
        return rows

    if format == "csv":
        if not data.strip():
            return []
        return list(csv.DictReader(io.StringIO(data)))

    raise ImportFormatError(
        f"Unsupported import format: {format}",
        code=ErrorCodes.UNSUPPORTED_FORMAT,
        context={"format": format},
    )


def validate_rows(rows: List[Any]) -> Tuple[List[OptimizationHistoryEntry], int]:
    """Convert raw rows to entries.

    Returns:
        The accepted entries, in input order, and the number of rejected rows
    """
    entries = []
    rejected = 0
    for row in rows:
        try:
            entries.append(HistoryRecord.model_validate(row).to_entry())
        except (PydanticValidationError, ValueError):
            rejected += 1
    return entries, rejected
