"""Tests for GO batch separator handling."""

from sqlinsight.database.batch_splitter import split_batches


def test_splits_on_go_lines():
    script = "SELECT 1;\nGO\nSELECT 2;\ngo\nSELECT 3;"

    assert split_batches(script) == ["SELECT 1;", "SELECT 2;", "SELECT 3;"]


def test_go_with_count_and_comment():
    script = "SELECT 1;\n  GO 5\nSELECT 2;\nGO -- end of batch\nSELECT 3;"

    assert split_batches(script) == ["SELECT 1;", "SELECT 2;", "SELECT 3;"]


def test_go_inside_words_kept():
    script = "SELECT GOAL FROM dbo.Targets;\nGOTO Done;\nSELECT 'GO';"

    assert split_batches(script) == [script]


def test_empty_batches_dropped():
    assert split_batches("GO\n\nGO\nSELECT 1;\nGO\n") == ["SELECT 1;"]
    assert split_batches("") == []
