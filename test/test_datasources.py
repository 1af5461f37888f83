import pyarrow as pa
import pyarrow.csv as csv
import pyarrow.parquet as pq
import pytest

from groupwise.compute import AggregateNode, SumAggregation
from groupwise.compute.datasources import (
    CSVDataSource,
    ParquetDataSource,
    PyArrowTableDataSource,
)

MOCK_PYARROW_TABLE = pa.table(
    {"team": ["red", "blue", "red", "blue"], "points": [10, 8, 6, 13]}
)


@pytest.fixture
def csv_file(tmp_path):
    filename = str(tmp_path / "points.csv")
    csv.write_csv(MOCK_PYARROW_TABLE, filename)
    return filename


@pytest.fixture
def parquet_file(tmp_path):
    filename = str(tmp_path / "points.parquet")
    pq.write_table(MOCK_PYARROW_TABLE, filename)
    return filename


def test_csv_str_and_schema(csv_file):
    source = CSVDataSource(csv_file)
    assert str(source) == f"CSVDataSource({csv_file}, block_size=None)"
    assert source.poll_schema().names == ["team", "points"]


def test_parquet_str_and_schema(parquet_file):
    source = ParquetDataSource(parquet_file)
    assert str(source) == f"ParquetDataSource({parquet_file}, batch_size=65536)"
    assert source.poll_schema() == MOCK_PYARROW_TABLE.schema


@pytest.mark.parametrize(
    "table",
    [MOCK_PYARROW_TABLE, MOCK_PYARROW_TABLE.to_batches()[0]],
)
def test_pyarrow_source(table):
    source = PyArrowTableDataSource(table)
    assert str(source) == "PyArrowTableDataSource(columns=['team', 'points'], rows=4)"
    assert source.poll_schema() == MOCK_PYARROW_TABLE.schema
    batches = list(source.batches())
    assert pa.Table.from_batches(batches).equals(MOCK_PYARROW_TABLE)


def test_csv_batches(csv_file):
    batches = list(CSVDataSource(csv_file).batches())
    assert pa.Table.from_batches(batches).equals(MOCK_PYARROW_TABLE)


def test_parquet_batches(parquet_file):
    batches = list(ParquetDataSource(parquet_file, batch_size=3).batches())
    assert [b.num_rows for b in batches] == [3, 1]
    assert pa.Table.from_batches(batches).equals(MOCK_PYARROW_TABLE)


def test_aggregate_groups_spanning_batches(parquet_file):
    aggregate = AggregateNode(
        ["team"],
        {"total": SumAggregation("points")},
        ParquetDataSource(parquet_file, batch_size=1),
    )
    result = next(aggregate.batches())
    assert result.to_pydict() == {"team": ["blue", "red"], "total": [21, 16]}
