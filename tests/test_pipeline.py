"""Tests for the CSV-to-table ingestion pipeline."""

from functools import partial

import pytest

from common.exceptions import (
    DatabaseError,
    RowArityMismatch,
    SchemaCreationFailed,
    TabularFormatError,
    ValueTypeMismatch,
)
from common.types import ColumnType, IngestionStatus
from controller.database import get_warehouse_connection
from tabular.pipeline import TabularIngestionPipeline, is_tabular, table_name_for
from conftest import fetch_all


@pytest.fixture
def pipeline(warehouse):
    return TabularIngestionPipeline(partial(get_warehouse_connection, warehouse), batch_size=2)


class TestHelpers:

    @pytest.mark.parametrize("name, expected", [
        ("sales.csv", True),
        ("SALES.CSV", True),
        ("archive.csv.gz", False),
        ("notes.txt", False),
        ("csv", False),
        (".csv", False),
    ])
    def test_is_tabular(self, name, expected):
        assert is_tabular(name, (".csv",)) is expected

    def test_is_tabular_custom_extensions(self):
        assert is_tabular("data.tsv", (".csv", ".tsv"))

    @pytest.mark.parametrize("name, expected", [
        ("sales.csv", "sales"),
        ("dir/q1 report.csv", "q1 report"),
        ("archive.tar.csv", "archive.tar"),
    ])
    def test_table_name_for(self, name, expected):
        assert table_name_for(name) == expected


class TestRun:

    def test_loads_file(self, pipeline, write_csv, warehouse):
        path = write_csv("people.csv", [
            ["id", "amount", "joined", ""],
            ["7", "3.50", "2023-05-01", "ignored"],
            ["8", "4", "2023-05-02", ""],
            ["9", "", "2023-05-03", ""],
        ])

        report = pipeline.run(path, "people")

        assert report.status is IngestionStatus.LOADED
        assert report.rows_loaded == 3
        assert list(report.columns) == [
            ("id", ColumnType.INTEGER),
            ("amount", ColumnType.FLOAT),
            ("joined", ColumnType.DATE),
        ]
        assert fetch_all(warehouse, 'SELECT id, amount, joined FROM "people" ORDER BY id') == [
            (7, 3.5, "2023-05-01"),
            (8, 4.0, "2023-05-02"),
            (9, None, "2023-05-03"),
        ]

    def test_header_only_file_creates_text_table(self, pipeline, write_csv, warehouse):
        path = write_csv("empty.csv", [["a", "b"]])

        report = pipeline.run(path, "empty")

        assert report.rows_loaded == 0
        assert list(report.columns) == [("a", ColumnType.TEXT), ("b", ColumnType.TEXT)]
        assert fetch_all(warehouse, 'SELECT COUNT(*) FROM "empty"') == [(0,)]

    def test_arity_mismatch_leaves_empty_table(self, pipeline, write_csv, warehouse):
        path = write_csv("bad.csv", [["a", "b"], ["1", "2"], ["3", "4"], ["5"]])

        with pytest.raises(RowArityMismatch):
            pipeline.run(path, "bad")

        assert fetch_all(warehouse, 'SELECT COUNT(*) FROM "bad"') == [(0,)]

    def test_existing_table(self, pipeline, write_csv):
        path = write_csv("dup.csv", [["a"], ["1"]])
        pipeline.run(path, "dup")

        with pytest.raises(SchemaCreationFailed):
            pipeline.run(path, "dup")

    def test_sampled_schema_mismatch_rolls_back(self, write_csv, warehouse):
        pipeline = TabularIngestionPipeline(partial(get_warehouse_connection, warehouse), schema_sample_rows=2)
        path = write_csv("sampled.csv", [["n"], ["1"], ["2"], ["three"]])

        with pytest.raises(ValueTypeMismatch):
            pipeline.run(path, "sampled")

        assert fetch_all(warehouse, 'SELECT COUNT(*) FROM "sampled"') == [(0,)]

    def test_no_header(self, pipeline, tmp_path):
        path = tmp_path / "blank.csv"
        path.write_text("")

        with pytest.raises(TabularFormatError):
            pipeline.run(path, "blank")

    def test_unreachable_warehouse_is_database_error(self, write_csv, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        pipeline = TabularIngestionPipeline(partial(get_warehouse_connection, blocker / "warehouse.db"))
        path = write_csv("sales.csv", [["id"], ["1"]])

        with pytest.raises(DatabaseError) as exc_info:
            pipeline.run(path, "sales")

        assert exc_info.value.table_name == "sales"
        assert isinstance(exc_info.value.__cause__, OSError)
