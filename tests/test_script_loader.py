"""Tests for script source resolution."""

import codecs

import pytest

from sqlinsight.core.exceptions import ScriptSourceError
from sqlinsight.services.script_loader import ScriptLoader, safe_base_name


def test_folder_sorted_and_filtered(tmp_path):
    (tmp_path / "b_orders.sql").write_text("SELECT 2;", encoding="utf-8")
    (tmp_path / "A_customers.SQL").write_text("SELECT 1;", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignore me", encoding="utf-8")

    scripts = ScriptLoader().load(paths=[tmp_path])

    assert [s.base_name for s in scripts] == ["A_customers", "b_orders"]
    assert scripts[0].source_path == tmp_path / "A_customers.SQL"


def test_literal_texts_numbered():
    scripts = ScriptLoader().load(texts=["SELECT 1;", "SELECT 2;"])

    assert [s.base_name for s in scripts] == ["Script_1", "Script_2"]
    assert scripts[1].sql_text == "SELECT 2;"
    assert scripts[0].source_path is None


def test_paths_before_texts(tmp_path):
    script_file = tmp_path / "report.sql"
    script_file.write_text("SELECT 1;", encoding="utf-8")

    scripts = ScriptLoader().load(paths=[str(script_file)], texts=["SELECT 2;"])

    assert [s.base_name for s in scripts] == ["report", "Script_1"]


def test_missing_path(tmp_path):
    with pytest.raises(ScriptSourceError):
        ScriptLoader().load(paths=[tmp_path / "missing.sql"])


def test_utf16_file_with_bom(tmp_path):
    script_file = tmp_path / "ssms.sql"
    script_file.write_bytes(codecs.BOM_UTF16_LE + "SELECT N'Ünïcode';".encode("utf-16-le"))

    script = ScriptLoader().from_file(script_file)

    assert script.sql_text == "SELECT N'Ünïcode';"


def test_utf8_bom_removed(tmp_path):
    script_file = tmp_path / "bom.sql"
    script_file.write_bytes(codecs.BOM_UTF8 + b"SELECT 1;")

    assert ScriptLoader().from_file(script_file).sql_text == "SELECT 1;"


def test_empty_scripts_skipped(tmp_path):
    (tmp_path / "empty.sql").write_text("  \n", encoding="utf-8")

    assert ScriptLoader().load(paths=[tmp_path], texts=[""]) == []


@pytest.mark.parametrize("name, expected", [
    ("Orders Report", "Orders_Report"),
    ("usp:Load/Data", "usp_Load_Data"),
    ("...", "Script"),
    ("dbo.GetOrders", "dbo.GetOrders"),
])
def test_safe_base_name(name, expected):
    assert safe_base_name(name) == expected
