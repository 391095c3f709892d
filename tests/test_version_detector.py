"""Tests for engine version detection."""

from sqlinsight.core.exceptions import QueryExecutionError
from sqlinsight.database.version_detector import VersionDetector
from tests.fakes import FakeConnection


def test_detects_version():
    version = VersionDetector.detect(FakeConnection())

    assert version.major_version == 16
    assert "SQL Server 2022" in version.to_prompt_text()
    assert "16.0.4135.4" in version.to_prompt_text()


def test_failure_is_not_fatal():
    class Unreachable(FakeConnection):
        def execute_query(self, query, params=None, timeout=None):
            raise QueryExecutionError("Login timeout expired", query=query)

    version = VersionDetector.detect(Unreachable())

    assert version.major_version == 0
