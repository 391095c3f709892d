"""Tests for the batch orchestrator."""

import httpx
import pytest

from sqlinsight.ai.llm_client import InferenceClient
from sqlinsight.core.constants import (
    ANNOTATED_FILE,
    BATCH_SUMMARY_FILE,
    INFERENCE_ERROR_FILE,
    ITEM_LOG_FILE,
    PLAN_FILE,
    PROMPT_FILE,
    SCHEMA_FILE,
    SUMMARY_FILE,
    AnalysisType,
    ItemStatus,
    PipelineStage,
    PlanMode,
)
from sqlinsight.core.exceptions import BatchSetupError, ConfigurationError
from sqlinsight.models.analysis_models import ScriptInput
from sqlinsight.services.batch_service import BatchOrchestrator, RunOptions
from tests.fakes import FakeConnection

TUNING_ARTIFACTS = [ITEM_LOG_FILE, PLAN_FILE, SCHEMA_FILE, PROMPT_FILE, ANNOTATED_FILE, SUMMARY_FILE]

SCRIPTS = [
    ScriptInput("first", "SELECT * FROM Sales.Orders WHERE CustomerID = 1;"),
    ScriptInput("second", "SELECT BROKEN FROM"),
    ScriptInput("third", "SELECT OrderID FROM Sales.Orders;"),
]


@pytest.fixture
def connections():
    return []


@pytest.fixture
def connection_factory(connections, shop_tables, orders_fragment):
    def factory(profile):
        connection = FakeConnection(tables=shop_tables, fragments=[orders_fragment])
        connections.append(connection)
        return connection
    return factory


@pytest.fixture
def orchestrator(settings, connection_factory, inference_client):
    return BatchOrchestrator(settings, connection_factory=connection_factory, inference_client=inference_client)


class TestTuningBatch:

    def test_failing_item_does_not_stop_batch(self, orchestrator):
        report = orchestrator.run(SCRIPTS, RunOptions(analysis_type=AnalysisType.TUNING))

        assert [i.status for i in report.items] == [
            ItemStatus.SUCCEEDED, ItemStatus.FAILED, ItemStatus.SUCCEEDED,
        ]
        assert report.items[1].failed_stage == PipelineStage.PLAN
        assert "BROKEN" in report.items[1].error
        assert report.succeeded_count == 2
        assert report.failed_count == 1
        assert not report.all_succeeded

    def test_successful_items_have_complete_folders(self, orchestrator):
        report = orchestrator.run(SCRIPTS)

        for outcome in (report.items[0], report.items[2]):
            for name in TUNING_ARTIFACTS:
                assert (outcome.output_dir / name).is_file(), name
            assert "--- Schema For Table: Sales.Orders ---" in (outcome.output_dir / SCHEMA_FILE).read_text("utf-8")
            assert (outcome.output_dir / ANNOTATED_FILE).read_text("utf-8").startswith("/* ==== AI TUNING")
            assert "Findings: 2" in (outcome.output_dir / SUMMARY_FILE).read_text("utf-8")
        assert report.items[0].output_dir.name == "01_first"
        assert report.items[2].output_dir.name == "03_third"

    def test_failed_item_logged_and_partial(self, orchestrator):
        report = orchestrator.run(SCRIPTS)

        failed_dir = report.items[1].output_dir
        assert failed_dir.name == "02_second"
        log_text = (failed_dir / ITEM_LOG_FILE).read_text("utf-8")
        assert "second failed at PLAN" in log_text
        assert "Traceback" in log_text
        assert not (failed_dir / PROMPT_FILE).exists()
        assert not (failed_dir / ANNOTATED_FILE).exists()

    def test_item_logs_are_separate(self, orchestrator):
        report = orchestrator.run(SCRIPTS)

        first_log = (report.items[0].output_dir / ITEM_LOG_FILE).read_text("utf-8")
        assert "second" not in first_log

    def test_batch_summary_written(self, orchestrator):
        report = orchestrator.run(SCRIPTS)

        summary = (report.batch_dir / BATCH_SUMMARY_FILE).read_text("utf-8")
        assert "Items: 3 | Succeeded: 2 | Failed: 1" in summary
        assert "[02] second | FAILED at PLAN" in summary
        assert "[01] first | SUCCEEDED | blocks=1 findings=2" in summary

    def test_prompt_persisted_before_failed_call(self, settings, connection_factory, ollama_config):
        client = InferenceClient(
            ollama_config,
            transport=httpx.MockTransport(lambda r: httpx.Response(502, text="bad gateway")),
        )
        orchestrator = BatchOrchestrator(settings, connection_factory=connection_factory, inference_client=client)

        report = orchestrator.run(SCRIPTS[:1])

        outcome = report.items[0]
        assert outcome.failed_stage == PipelineStage.INFER
        assert (outcome.output_dir / PROMPT_FILE).is_file()
        assert (outcome.output_dir / INFERENCE_ERROR_FILE).read_text("utf-8") == "bad gateway"
        assert not (outcome.output_dir / ANNOTATED_FILE).exists()

    def test_no_referenced_objects_is_empty_context(self, settings, ollama_config):
        def factory(profile):
            return FakeConnection(fragments=[
                '<ShowPlanXML xmlns="http://schemas.microsoft.com/sqlserver/2004/07/showplan">'
                '<BatchSequence><Batch><Statements><StmtSimple StatementText="SELECT 1" />'
                '</Statements></Batch></BatchSequence></ShowPlanXML>'
            ])

        client_calls = []
        client = InferenceClient(ollama_config, transport=httpx.MockTransport(
            lambda r: client_calls.append(r) or httpx.Response(200, json={"response": "x"})
        ))
        orchestrator = BatchOrchestrator(settings, connection_factory=factory, inference_client=client)

        report = orchestrator.run([ScriptInput("constant", "SELECT 1;")])

        assert report.items[0].failed_stage == PipelineStage.SCHEMA
        assert client_calls == []

    def test_connection_per_item_and_disposed(self, orchestrator, connections):
        orchestrator.run(SCRIPTS)

        assert len(connections) == 3
        assert all(c.disposed for c in connections)
        assert connections[0].plan_calls[0][1] == PlanMode.ESTIMATED

    def test_actual_plan_mode_passed(self, orchestrator, connections):
        orchestrator.run(SCRIPTS[:1], RunOptions(plan_mode=PlanMode.ACTUAL))

        assert connections[0].plan_calls[0][1] == PlanMode.ACTUAL

    def test_degraded_plan_reported(self, settings, shop_tables, orders_fragment, inference_client):
        def factory(profile):
            return FakeConnection(
                tables=shop_tables,
                fragments=[orders_fragment, "<ShowPlanXML><BatchSequence/></ShowPlanXML>"],
            )

        orchestrator = BatchOrchestrator(settings, connection_factory=factory, inference_client=inference_client)
        report = orchestrator.run(SCRIPTS[:1])

        assert report.items[0].succeeded
        assert report.items[0].warnings
        assert "degraded plan" in (report.batch_dir / BATCH_SUMMARY_FILE).read_text("utf-8")

    def test_strict_merge_fails_item(self, settings, shop_tables, orders_fragment, inference_client):
        settings.pipeline.strict_plan_merge = True

        def factory(profile):
            return FakeConnection(
                tables=shop_tables,
                fragments=[orders_fragment, "<ShowPlanXML><BatchSequence/></ShowPlanXML>"],
            )

        orchestrator = BatchOrchestrator(settings, connection_factory=factory, inference_client=inference_client)
        report = orchestrator.run(SCRIPTS[:1])

        assert report.items[0].status == ItemStatus.FAILED
        assert report.items[0].failed_stage == PipelineStage.PLAN


class TestCodeReviewBatch:

    def test_never_touches_engine(self, settings, inference_client):
        def factory(profile):
            raise AssertionError("code review must not open an engine connection")

        orchestrator = BatchOrchestrator(settings, connection_factory=factory, inference_client=inference_client)

        report = orchestrator.run(SCRIPTS, RunOptions(analysis_type=AnalysisType.CODE_REVIEW))

        assert report.all_succeeded
        for outcome in report.items:
            assert not (outcome.output_dir / PLAN_FILE).exists()
            assert not (outcome.output_dir / SCHEMA_FILE).exists()
            prompt = (outcome.output_dir / PROMPT_FILE).read_text("utf-8")
            assert "=== BEGIN SQL SCRIPT ===" in prompt
            assert "EXECUTION PLAN ===" not in prompt
        assert report.plan_mode == "N/A"

    def test_unpaired_surrogate_in_reply_is_written(self, settings, ollama_config):
        replies = [
            b'{"response": "/* \\ud83d bad */ SELECT 1;"}',
            b'{"response": "SELECT 2;"}',
        ]

        def handler(request):
            return httpx.Response(200, content=replies.pop(0), headers={"Content-Type": "application/json"})

        client = InferenceClient(ollama_config, transport=httpx.MockTransport(handler))
        orchestrator = BatchOrchestrator(settings, inference_client=client)

        report = orchestrator.run(SCRIPTS[:2], RunOptions(analysis_type=AnalysisType.CODE_REVIEW))

        assert [i.status for i in report.items] == [ItemStatus.SUCCEEDED, ItemStatus.SUCCEEDED]
        annotated = (report.items[0].output_dir / ANNOTATED_FILE).read_text("utf-8")
        assert annotated == "/* ? bad */ SELECT 1;"

    def test_unexpected_error_does_not_stop_batch(self, settings, inference_client, monkeypatch):
        orchestrator = BatchOrchestrator(settings, inference_client=inference_client)
        parse = orchestrator.parser.parse
        calls = []

        def flaky_parse(text):
            calls.append(text)
            if len(calls) == 1:
                raise RuntimeError("parser exploded")
            return parse(text)

        monkeypatch.setattr(orchestrator.parser, "parse", flaky_parse)

        report = orchestrator.run(SCRIPTS, RunOptions(analysis_type=AnalysisType.CODE_REVIEW))

        assert [i.status for i in report.items] == [
            ItemStatus.FAILED, ItemStatus.SUCCEEDED, ItemStatus.SUCCEEDED,
        ]
        assert report.items[0].failed_stage == PipelineStage.SUMMARIZE
        assert report.items[0].error == "parser exploded"
        assert "Traceback" in (report.items[0].output_dir / ITEM_LOG_FILE).read_text("utf-8")
        assert (report.batch_dir / BATCH_SUMMARY_FILE).is_file()


class TestBatchSetup:

    def test_unwritable_output_root(self, settings, tmp_path, inference_client):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        orchestrator = BatchOrchestrator(settings, connection_factory=None, inference_client=inference_client)

        with pytest.raises(BatchSetupError):
            orchestrator.run(SCRIPTS, RunOptions(output_root=blocker / "out"))

    def test_batch_dirs_never_collide(self, tmp_path):
        first = BatchOrchestrator.create_batch_dir(tmp_path)
        second = BatchOrchestrator.create_batch_dir(tmp_path)

        assert first != second
        assert first.is_dir() and second.is_dir()

    def test_unknown_template_fails_before_output(self, settings, inference_client):
        orchestrator = BatchOrchestrator(settings, connection_factory=None, inference_client=inference_client)

        with pytest.raises(ConfigurationError):
            orchestrator.run(SCRIPTS, RunOptions(template_name="missing"))

        assert not settings.pipeline.output_root.exists()
