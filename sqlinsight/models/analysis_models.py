"""
Pipeline data model

Each pipeline stage produces exactly one of these records and hands it to the
next stage. Records are frozen (or built once and never mutated) so a stage
cannot change what an earlier stage produced.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Tuple, Iterator

from sqlinsight.core.constants import AnalysisType, ItemStatus, PipelineStage


@dataclass(frozen=True)
class ScriptInput:
    """One analyzed unit of SQL text"""
    base_name: str
    sql_text: str
    source_path: Optional[Path] = None


@dataclass(frozen=True)
class ExecutionPlanDocument:
    """
    Merged execution plan for one script

    merge_strategy is "structural" when the document is a standalone
    Showplan file, or "wrap" when fragments were only concatenated under a
    synthetic root.
    """
    fragments: Tuple[str, ...]
    merged_xml: str
    is_actual: bool = False
    merge_strategy: str = "structural"
    degraded: bool = False

    @property
    def fragment_count(self) -> int:
        return len(self.fragments)


@dataclass(frozen=True)
class ObjectReference:
    """Schema-qualified table or view referenced by a plan"""
    database: str
    schema: str
    name: str

    @property
    def key(self) -> Tuple[str, str, str]:
        """Case-insensitive identity"""
        return (self.database.lower(), self.schema.lower(), self.name.lower())

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    @property
    def full_name(self) -> str:
        return ".".join(quote_identifier(p) for p in (self.database, self.schema, self.name))

    def __str__(self) -> str:
        return f"{self.database}.{self.schema}.{self.name}"


def quote_identifier(name: str) -> str:
    """Bracket-quote an identifier, escaping closing brackets"""
    return "[" + name.replace("]", "]]") + "]"


@dataclass(frozen=True)
class ColumnInfo:
    """Column metadata row"""
    name: str
    type_name: str
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_nullable: bool = True

    def to_line(self) -> str:
        return (
            f"Column: {self.name} | {self.type_name} | Length={_fmt(self.max_length)} | "
            f"Precision={_fmt(self.precision)} | Scale={_fmt(self.scale)} | "
            f"Nullable={'YES' if self.is_nullable else 'NO'}"
        )


@dataclass(frozen=True)
class IndexInfo:
    """Index metadata row"""
    name: str
    index_type: str
    key_columns: Tuple[str, ...] = ()
    included_columns: Tuple[str, ...] = ()

    def to_line(self) -> str:
        return (
            f"Index: {self.name} | {self.index_type} | "
            f"Keys={', '.join(self.key_columns)} | Included={', '.join(self.included_columns)}"
        )


def _fmt(value: Optional[int]) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class TableSchema:
    """Columns and indexes of one referenced object"""
    reference: ObjectReference
    columns: Tuple[ColumnInfo, ...] = ()
    indexes: Tuple[IndexInfo, ...] = ()
    error: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return bool(self.columns)

    def to_text(self) -> str:
        lines = [
            f"--- Schema For Table: {self.reference.qualified_name} ---",
            f"Database: {self.reference.database}",
        ]
        lines.extend(col.to_line() for col in self.columns)
        lines.extend(idx.to_line() for idx in self.indexes)
        return "\n".join(lines)


class SchemaDocument:
    """Ordered mapping of ObjectReference to TableSchema"""

    def __init__(self, tables: Optional[List[TableSchema]] = None):
        self._tables: "OrderedDict[ObjectReference, TableSchema]" = OrderedDict()
        for table in tables or []:
            self._tables[table.reference] = table

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[TableSchema]:
        return iter(self._tables.values())

    def __getitem__(self, reference: ObjectReference) -> TableSchema:
        return self._tables[reference]

    def __contains__(self, reference: object) -> bool:
        return reference in self._tables

    @property
    def references(self) -> List[ObjectReference]:
        return list(self._tables.keys())

    @property
    def resolved_count(self) -> int:
        return sum(1 for t in self._tables.values() if t.is_resolved)

    def to_text(self) -> str:
        return "\n\n".join(t.to_text() for t in self._tables.values()) + ("\n" if self._tables else "")


@dataclass(frozen=True)
class PromptTemplate:
    """Named analysis instructions"""
    name: str
    analysis_type: AnalysisType
    body: str
    system_prompt: str = ""


@dataclass(frozen=True)
class AnalysisContext:
    """Everything the prompt assembler needs for one script"""
    script: ScriptInput
    template: PromptTemplate
    plan: Optional[ExecutionPlanDocument] = None
    schema: Optional[SchemaDocument] = None
    engine_version: str = ""


@dataclass(frozen=True)
class RecommendationBlock:
    """One AI comment block in an annotated script"""
    kind: str  # "tuning" or "review"
    header: str
    findings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """Annotated script and the recommendation blocks found in it"""
    annotated_script: str
    blocks: Tuple[RecommendationBlock, ...] = ()

    @property
    def block_count(self) -> int:
        return len(self.blocks)

    @property
    def finding_count(self) -> int:
        return sum(len(b.findings) for b in self.blocks)

    @property
    def problems(self) -> List[str]:
        return [finding for block in self.blocks for finding in block.findings]


@dataclass
class ItemOutcome:
    """Result of driving one script through the pipeline"""
    index: int
    base_name: str
    output_dir: Path
    status: ItemStatus = ItemStatus.PENDING
    failed_stage: Optional[PipelineStage] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    result: Optional[AnalysisResult] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ItemStatus.SUCCEEDED


@dataclass
class BatchReport:
    """Result of one batch run"""
    batch_dir: Path
    analysis_type: AnalysisType
    plan_mode: str
    items: List[ItemOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def succeeded_count(self) -> int:
        return sum(1 for item in self.items if item.succeeded)

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self.items if item.status == ItemStatus.FAILED)

    @property
    def all_succeeded(self) -> bool:
        return bool(self.items) and self.failed_count == 0
