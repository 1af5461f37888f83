"""The Dataframe object itself."""
from typing import Any, Callable, Self

import pyarrow as pa

from ..compute import (
    AggregateNode,
    ApplyNode,
    CSVDataSource,
    ParquetDataSource,
    PyArrowTableDataSource,
    TransformNode,
)
from ..compute.base import QueryPlanNode
from ..compute.datasources import DataSourceNode
from ..utils import tabulate
from .groupby import GroupBy, resolve_aggregations, resolve_transformations


class Dataframe:
  """Data structure that handles data in rows and columns.

  The Dataframe object allows to represent in-memory data
  and perform group-wise analyses over it.

  The dataframe is lazy, which means that any analysis
  will be applied only when the data is requested
  through ``.collect()``, ``.to_arrow()`` or ``.show()``.

  >>> import pyarrow as pa
  >>> df = Dataframe(pa.table({"team": ["red", "blue", "red"], "points": [10, 8, 6]}))
  >>> print(df.groupby("team").agg({"points": "sum"}).show())
  team | points
  ---- | ------
  blue |      8
  red  |     16
  """
  def __init__(self, node_or_table: QueryPlanNode|pa.Table|pa.RecordBatch) -> None:
    """
    :param node_or_table: A compute engine node expected to emit
                          the data for the dataframe or a `pyarrow.Table`.
    """
    if isinstance(node_or_table, (pa.Table, pa.RecordBatch)):
      node_or_table = PyArrowTableDataSource(node_or_table)

    if not isinstance(node_or_table, QueryPlanNode):
      raise ValueError("Invalid input, expected a QueryPlanNode or a PyArrow Table")

    self.node = node_or_table

  @classmethod
  def open_csv(cls, filename: str) -> Self:
    """Open a CSV file and create a Dataframe out of its data.

    :param filename: The path to a local CSV file.
    """
    return cls(CSVDataSource(filename))

  @classmethod
  def open_parquet(cls, filename: str) -> Self:
    """Open a Parquet file and create a Dataframe out of its data.

    :param filename: The path to a local Parquet file.
    """
    return cls(ParquetDataSource(filename))

  def __str__(self) -> str:
    return f"Dataframe({self.node})"

  @property
  def columns(self) -> list[str]:
    """The names of the columns of the dataframe.

    For data sources the schema is read without loading the data,
    for any other kind of node the data has to be computed.
    """
    if isinstance(self.node, DataSourceNode):
      return self.node.poll_schema().names
    return self.to_arrow().column_names

  def groupby(self, keys: str|list[str], sort: bool = True, dropna: bool = True) -> GroupBy:
    """Group the rows of the dataframe by one or more columns.

    The returned :class:`GroupBy` provides ``agg``, ``transform``
    and ``apply`` to run the analysis on each group.

    :param keys: The column or columns to group by.
    :param sort: Sort the groups by their key.
    :param dropna: Discard the rows where the key is null.
    """
    if isinstance(keys, str):
      keys = [keys]
    return GroupBy(self, list(keys), sort=sort, dropna=dropna)

  def agg(self, spec: Any = None, **named: tuple[str, Any]) -> Self:
    """Aggregate the whole dataframe into a single row.

    Accepts the same arguments as :meth:`GroupBy.agg`.
    """
    aggregations = resolve_aggregations(spec, named, self)
    return self.__class__(AggregateNode([], aggregations, self.node))

  def transform(self, spec: Any = None, **named: tuple[str, Any]) -> Self:
    """Transform the columns of the whole dataframe.

    The result has the same number of rows as the dataframe,
    reducing functions are broadcast to all rows.
    Accepts the same arguments as :meth:`GroupBy.transform`.
    """
    transforms = resolve_transformations(spec, named, self)
    return self.__class__(TransformNode([], transforms, self.node, select=[]))

  def apply(self, func: Callable[[pa.RecordBatch], Any], result_name: str = "result") -> Self:
    """Invoke ``func`` with the whole dataframe as a :class:`pyarrow.RecordBatch`."""
    return self.__class__(ApplyNode([], func, self.node, result_name=result_name))

  def collect(self) -> Self:
    """Collect all data of the dataframe in memory.

    Returns a new Dataframe that has all data from the
    previous dataframe eagerly loaded in memory.
    """
    return self.__class__(self.to_arrow())

  def to_arrow(self) -> pa.Table:
    """Collect all the data and return a pyarrow.Table"""
    batches = list(self.node.batches())
    if not batches:
      return pa.table({})
    return pa.Table.from_batches(batches)

  def show(self, max_rows: int = 20) -> str:
    """Format the content of the dataframe as a text table."""
    return tabulate.tabulate(self.to_arrow(), max_rows=max_rows)
