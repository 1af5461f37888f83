"""Query Plan nodes that load data

The datasource nodes are the leafs of every plan.
They fetch the data from some source, convert it into
Arrow format and forward it to the grouping nodes.

Data can come from CSV files, Parquet files or from
tables already in memory, which is what the guide uses
for all its examples.
"""

from abc import abstractmethod

import pyarrow as pa
import pyarrow.csv
import pyarrow.parquet

from .base import QueryPlanNode


class DataSourceNode(QueryPlanNode):
    """Base class for nodes that load data from a source."""

    @abstractmethod
    def poll_schema(self) -> pa.Schema:
        """Poll the schema of the data source without loading its content."""
        ...


class CSVDataSource(DataSourceNode):
    """Load data from a CSV file.

    The file is read incrementally, each block of
    ``block_size`` bytes becomes a separate batch.
    Grouping nodes will see the rows of a group
    spread across multiple batches.
    """

    def __init__(self, filename: str, block_size: int | None = None) -> None:
        """
        :param filename: The path of the local CSV file.
        :param block_size: How many bytes to read for each batch.
        """
        self.filename = filename
        self.block_size = block_size

    def __str__(self) -> str:
        return f"CSVDataSource({self.filename}, block_size={self.block_size})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Open the CSV file and emit its batches."""
        read_options = pa.csv.ReadOptions(block_size=self.block_size)
        with pa.csv.open_csv(self.filename, read_options=read_options) as reader:
            yield from reader

    def poll_schema(self) -> pa.Schema:
        """Poll the schema of the CSV file."""
        with pa.csv.open_csv(self.filename) as reader:
            return reader.schema


class ParquetDataSource(DataSourceNode):
    """Load data from a Parquet file, ``batch_size`` rows at the time."""

    def __init__(self, filename: str, batch_size: int | None = None) -> None:
        """
        :param filename: The path of the local parquet file.
        :param batch_size: How many rows each batch should contain.
        """
        self.filename = filename
        self.batch_size = batch_size or 65536

    def __str__(self) -> str:
        return f"ParquetDataSource({self.filename}, batch_size={self.batch_size})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Open the parquet file and emit its batches."""
        with pa.parquet.ParquetFile(self.filename) as reader:
            yield from reader.iter_batches(batch_size=self.batch_size)

    def poll_schema(self) -> pa.Schema:
        """Poll the schema of the Parquet file."""
        with pa.parquet.ParquetFile(self.filename) as reader:
            return reader.schema_arrow


class PyArrowTableDataSource(DataSourceNode):
    """Use an in-memory pyarrow.Table or pyarrow.RecordBatch in a plan.

    >>> import pyarrow as pa
    >>> source = PyArrowTableDataSource(pa.table({"team": ["red", "blue"]}))
    >>> str(source)
    "PyArrowTableDataSource(columns=['team'], rows=2)"
    """

    def __init__(self, table: pa.Table | pa.RecordBatch) -> None:
        """
        :param table: The table or recordbatch with the data to read.
        """
        self.table = table

    def __str__(self) -> str:
        return f"PyArrowTableDataSource(columns={self.table.column_names}, rows={self.table.num_rows})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Emit the data contained in the Table."""
        if isinstance(self.table, pa.RecordBatch):
            yield self.table
        else:
            yield from self.table.to_batches()

    def poll_schema(self) -> pa.Schema:
        """Poll the schema of the Table."""
        return self.table.schema
