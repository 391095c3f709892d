"""
Batch Orchestrator - drives scripts through the analysis pipeline

Per batch:
    CREATE_OUTPUT_DIR -> for each script: PLAN -> EXTRACT -> SCHEMA -> PROMPT
    -> INFER -> SUMMARIZE -> DONE

Every item runs in isolation with its own output folder, engine connection
and item.log. An item failure is logged and the batch moves on; only failing
to create the batch directory stops the run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from sqlinsight.ai.llm_client import InferenceClient, LLMConfig
from sqlinsight.ai.prompts import PromptAssembler, PromptTemplateStore
from sqlinsight.analysis.object_extractor import ObjectReferenceExtractor
from sqlinsight.analysis.plan_merger import PlanMerger
from sqlinsight.analysis.schema_collector import SchemaCollector
from sqlinsight.analysis.summary_builder import RecommendationParser, SummaryBuilder
from sqlinsight.core.config import Settings, get_settings
from sqlinsight.core.constants import (
    ANNOTATED_FILE,
    BATCH_SUMMARY_FILE,
    INFERENCE_ERROR_FILE,
    ITEM_LOG_FILE,
    PLAN_FILE,
    PROMPT_FILE,
    SCHEMA_FILE,
    SUMMARY_FILE,
    SYSTEM_PROMPT_FILE,
    AnalysisType,
    ItemStatus,
    PipelineStage,
    PlanMode,
)
from sqlinsight.core.exceptions import (
    BatchSetupError,
    EmptyContextError,
    InferenceError,
    PipelineError,
    SQLInsightError,
)
from sqlinsight.core.logger import LogContext, get_logger, item_log, log_exception
from sqlinsight.database.version_detector import VersionDetector
from sqlinsight.models.analysis_models import (
    AnalysisContext,
    BatchReport,
    ExecutionPlanDocument,
    ItemOutcome,
    ObjectReference,
    PromptTemplate,
    ScriptInput,
    SchemaDocument,
)
from sqlinsight.models.connection_profile import ConnectionProfile
from sqlinsight.services.script_loader import safe_base_name

logger = get_logger('services.batch')

BATCH_DIR_FORMAT = "%Y%m%d_%H%M%S"


@dataclass(frozen=True)
class RunOptions:
    """Already-resolved inputs for one batch"""
    analysis_type: AnalysisType = AnalysisType.TUNING
    plan_mode: PlanMode = PlanMode.ESTIMATED
    model: Optional[str] = None
    template_name: Optional[str] = None
    output_root: Optional[Path] = None


@dataclass
class RunContext:
    """State of one batch run, passed to every stage"""
    options: RunOptions
    template: PromptTemplate
    batch_dir: Path
    report: BatchReport
    total: int = 0


@dataclass
class ItemContext:
    """State of one item; artifacts go to output_dir only"""
    run: RunContext
    index: int
    script: ScriptInput
    output_dir: Path
    outcome: ItemOutcome
    stage: PipelineStage = PipelineStage.PLAN
    artifacts: List[Path] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.script.base_name

    def enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        logger.info(f"[{self.index}/{self.run.total}] {self.name}: {stage.value}")

    def write_artifact(self, file_name: str, content: str) -> Path:
        path = self.output_dir / file_name
        path.write_text(content, encoding='utf-8', errors='replace')
        self.artifacts.append(path)
        logger.debug(f"Wrote {path}")
        return path


class BatchOrchestrator:
    """
    Runs a batch of scripts through plan capture, schema collection and AI analysis

    Usage:
        orchestrator = BatchOrchestrator(settings)
        report = orchestrator.run(scripts, RunOptions(analysis_type=AnalysisType.TUNING))
        report.failed_count
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connection_factory: Optional[Callable[[ConnectionProfile], object]] = None,
        inference_client: Optional[InferenceClient] = None,
        template_store: Optional[PromptTemplateStore] = None,
    ):
        self.settings = settings or get_settings()
        self.connection_factory = connection_factory or self._default_connection_factory
        self.inference_client = inference_client or InferenceClient(
            LLMConfig.from_settings(self.settings.ai)
        )
        self.template_store = template_store or PromptTemplateStore(self.settings.ai.templates_dir)

        self.merger = PlanMerger(strict=self.settings.pipeline.strict_plan_merge)
        self.extractor = ObjectReferenceExtractor()
        self.assembler = PromptAssembler()
        self.parser = RecommendationParser()
        self.summary_builder = SummaryBuilder()

    def _default_connection_factory(self, profile: ConnectionProfile):
        # pyodbc needs the system ODBC driver manager; import only when the engine is used
        from sqlinsight.database.connection import DatabaseConnection
        return DatabaseConnection(profile, echo_sql=self.settings.database.echo_sql)

    # =========================================================================
    # Batch
    # =========================================================================

    def run(self, scripts: Sequence[ScriptInput], options: Optional[RunOptions] = None) -> BatchReport:
        """
        Process every script; item failures are recorded, never raised

        Raises:
            ConfigurationError: If the prompt template cannot be resolved
            BatchSetupError: If the batch output directory cannot be created
        """
        options = options or RunOptions()
        template = self._resolve_template(options)
        batch_dir = self.create_batch_dir(options.output_root or self.settings.pipeline.output_root)

        report = BatchReport(
            batch_dir=batch_dir,
            analysis_type=options.analysis_type,
            plan_mode=options.plan_mode.value if options.analysis_type.needs_engine else "N/A",
        )
        run = RunContext(
            options=options,
            template=template,
            batch_dir=batch_dir,
            report=report,
            total=len(scripts),
        )

        logger.info(
            f"Batch started: {len(scripts)} script(s), {options.analysis_type.value} analysis, "
            f"template '{template.name}', output {batch_dir}"
        )
        for index, script in enumerate(scripts, start=1):
            report.items.append(self.process_item(run, index, script))

        report.finished_at = datetime.now()
        self.write_batch_summary(run)
        logger.info(
            f"Batch finished: {report.succeeded_count} succeeded, {report.failed_count} failed"
        )
        return report

    def _resolve_template(self, options: RunOptions) -> PromptTemplate:
        name = options.template_name
        if not name:
            pipeline = self.settings.pipeline
            name = pipeline.tuning_template if options.analysis_type == AnalysisType.TUNING \
                else pipeline.review_template
        return self.template_store.get(name, options.analysis_type)

    @staticmethod
    def create_batch_dir(output_root: Path) -> Path:
        """Create <output_root>/<timestamp>, suffixed when the name is taken"""
        stamp = datetime.now().strftime(BATCH_DIR_FORMAT)
        root = Path(output_root)
        try:
            root.mkdir(parents=True, exist_ok=True)
            candidate = root / stamp
            attempt = 1
            while True:
                try:
                    candidate.mkdir()
                    return candidate
                except FileExistsError:
                    attempt += 1
                    candidate = root / f"{stamp}_{attempt}"
        except OSError as e:
            raise BatchSetupError(
                f"Cannot create batch output directory under {root}: {e}",
                {"output_root": str(root)},
            ) from e

    # =========================================================================
    # Item
    # =========================================================================

    def process_item(self, run: RunContext, index: int, script: ScriptInput) -> ItemOutcome:
        """Run one script through every stage; never raises for item-level errors"""
        output_dir = run.batch_dir / f"{index:02d}_{safe_base_name(script.base_name)}"
        outcome = ItemOutcome(index=index, base_name=script.base_name, output_dir=output_dir)
        item = ItemContext(run=run, index=index, script=script, output_dir=output_dir, outcome=outcome)

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._fail(item, e, f"Cannot create item folder {output_dir}")
            return outcome

        with item_log(output_dir / ITEM_LOG_FILE):
            try:
                self._run_stages(item)
                outcome.status = ItemStatus.SUCCEEDED
                logger.info(f"[{index}/{run.total}] {script.base_name}: succeeded")
            except PipelineError as e:
                self._fail(item, e, f"{script.base_name} failed at {e.stage.value}", stage=e.stage)
                if isinstance(e, InferenceError) and e.raw_body:
                    self._write_quietly(item, INFERENCE_ERROR_FILE, e.raw_body)
            except SQLInsightError as e:
                self._fail(item, e, f"{script.base_name} failed at {item.stage.value}")
            except OSError as e:
                self._fail(item, e, f"{script.base_name}: cannot write artifact")
            except Exception as e:
                self._fail(item, e, f"{script.base_name} failed unexpectedly at {item.stage.value}")

        return outcome

    def _fail(
        self,
        item: ItemContext,
        exc: Exception,
        message: str,
        stage: Optional[PipelineStage] = None,
    ) -> None:
        item.outcome.status = ItemStatus.FAILED
        item.outcome.failed_stage = stage or item.stage
        item.outcome.error = str(exc)
        log_exception(logger, exc, message)

    def _write_quietly(self, item: ItemContext, file_name: str, content: str) -> None:
        try:
            item.write_artifact(file_name, content)
        except OSError as e:
            logger.error(f"Cannot write {file_name} for {item.name}: {e}")

    def _run_stages(self, item: ItemContext) -> None:
        options = item.run.options
        plan: Optional[ExecutionPlanDocument] = None
        schema: Optional[SchemaDocument] = None
        engine_version = ""

        if options.analysis_type.needs_engine:
            connection = self.connection_factory(ConnectionProfile.from_settings(self.settings.database))
            try:
                plan = self._plan_stage(item, connection)
                references = self._extract_stage(item, plan)
                schema = self._schema_stage(item, connection, references)
                engine_version = VersionDetector.detect(connection).to_prompt_text()
            finally:
                dispose = getattr(connection, 'dispose', None)
                if callable(dispose):
                    dispose()

        context = AnalysisContext(
            script=item.script,
            template=item.run.template,
            plan=plan,
            schema=schema,
            engine_version=engine_version,
        )
        system_prompt, user_prompt = self._prompt_stage(item, context)
        annotated = self._infer_stage(item, system_prompt, user_prompt)
        self._summarize_stage(item, annotated)

    def _plan_stage(self, item: ItemContext, connection) -> ExecutionPlanDocument:
        item.enter(PipelineStage.PLAN)
        mode = item.run.options.plan_mode
        fragments = connection.capture_plan_fragments(item.script.sql_text, mode, object_name=item.name)
        plan = self.merger.merge(fragments, is_actual=mode.is_actual, object_name=item.name)
        item.write_artifact(PLAN_FILE, plan.merged_xml)
        if plan.degraded:
            item.outcome.warnings.append(
                f"degraded plan: {plan.fragment_count} fragment(s) wrapped, not a standalone .sqlplan"
            )
        return plan

    def _extract_stage(self, item: ItemContext, plan: ExecutionPlanDocument) -> List[ObjectReference]:
        item.enter(PipelineStage.EXTRACT)
        references = self.extractor.extract(plan)
        for reference in references:
            logger.debug(f"Referenced object: {reference}")
        return references

    def _schema_stage(self, item: ItemContext, connection, references: List[ObjectReference]) -> SchemaDocument:
        item.enter(PipelineStage.SCHEMA)
        if not references:
            raise EmptyContextError("Execution plan references no user objects", object_name=item.name)

        schema = SchemaCollector(connection).collect(references)
        item.write_artifact(SCHEMA_FILE, schema.to_text())
        for table in schema:
            if not table.is_resolved:
                item.outcome.warnings.append(f"no schema for {table.reference}: {table.error}")
        if not schema.resolved_count:
            raise EmptyContextError("No referenced object could be resolved", object_name=item.name)
        return schema

    def _prompt_stage(self, item: ItemContext, context: AnalysisContext):
        item.enter(PipelineStage.PROMPT)
        system_prompt, user_prompt = self.assembler.build(context)
        # Written before the call; a failed request keeps its prompt on disk
        item.write_artifact(SYSTEM_PROMPT_FILE, system_prompt)
        item.write_artifact(PROMPT_FILE, user_prompt)
        return system_prompt, user_prompt

    def _infer_stage(self, item: ItemContext, system_prompt: str, user_prompt: str) -> str:
        item.enter(PipelineStage.INFER)
        with LogContext(logger, f"{item.name}: inference"):
            annotated = self.inference_client.generate(
                user_prompt,
                system_prompt=system_prompt,
                model=item.run.options.model,
                object_name=item.name,
            )
        item.write_artifact(ANNOTATED_FILE, annotated)
        return annotated

    def _summarize_stage(self, item: ItemContext, annotated: str) -> None:
        item.enter(PipelineStage.SUMMARIZE)
        result = self.parser.parse(annotated)
        summary = self.summary_builder.build(item.name, result, item.run.options.analysis_type)
        item.write_artifact(SUMMARY_FILE, summary)
        item.outcome.result = result
        logger.info(
            f"{item.name}: {result.block_count} recommendation block(s), {result.finding_count} finding(s)"
        )

    # =========================================================================
    # Batch summary
    # =========================================================================

    @staticmethod
    def render_batch_summary(report: BatchReport) -> str:
        lines = [
            "SQL Insight Batch Summary",
            "=========================",
            f"Batch: {report.batch_dir}",
            f"Analysis type: {report.analysis_type.value}",
            f"Plan mode: {report.plan_mode}",
            f"Started: {report.started_at:%Y-%m-%d %H:%M:%S}",
        ]
        if report.finished_at:
            lines.append(f"Finished: {report.finished_at:%Y-%m-%d %H:%M:%S}")
        lines.append(
            f"Items: {len(report.items)} | Succeeded: {report.succeeded_count} | "
            f"Failed: {report.failed_count}"
        )
        lines.append("")

        for item in report.items:
            label = f"[{item.index:02d}] {item.base_name}"
            if item.succeeded:
                line = f"{label} | SUCCEEDED"
                if item.result is not None:
                    line += f" | blocks={item.result.block_count} findings={item.result.finding_count}"
            else:
                stage = item.failed_stage.value if item.failed_stage else "?"
                line = f"{label} | FAILED at {stage} | {item.error}"
            lines.append(line)
            lines.extend(f"    warning: {warning}" for warning in item.warnings)

        return "\n".join(lines) + "\n"

    def write_batch_summary(self, run: RunContext) -> Optional[Path]:
        path = run.batch_dir / BATCH_SUMMARY_FILE
        try:
            path.write_text(self.render_batch_summary(run.report), encoding='utf-8', errors='replace')
        except OSError as e:
            log_exception(logger, e, f"Cannot write {path}")
            return None
        logger.info(f"Batch summary written to {path}")
        return path
