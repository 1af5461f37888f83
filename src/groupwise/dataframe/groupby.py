"""Group-wise analyses on a Dataframe.

Grouping a dataframe doesn't compute anything by itself,
it just records which columns the rows should be grouped by.
What happens to the groups is decided by the method
invoked on the :class:`GroupBy`:

* ``agg`` reduces each group to a single row.
* ``transform`` computes a value for each row of the group,
  the result has the same rows of the original dataframe.
* ``apply`` invokes a function on each group and
  combines whatever the function returned.

The functions for ``agg`` and ``transform`` can be provided
in multiple forms::

    .agg("sum")                           # all non-key columns, names kept
    .agg(["min", "max"])                  # all non-key columns, named points_min, points_max
    .agg({"points": "sum"})               # only the points column
    .agg({"points": ["min", "max"]})      # named points_min, points_max
    .agg(best=("points", "max"))          # named best

Functions are referenced by name, or can be custom Python callables.
"""
from typing import TYPE_CHECKING, Any, Callable, Iterator, Sequence

import pyarrow as pa

from ..compute import AggregateNode, ApplyNode, TransformNode
from ..compute.aggregate import Aggregation, FunctionAggregation, get_aggregation
from ..compute.base import materialize
from ..compute.grouping import Grouping
from ..compute.transform import (
    BroadcastTransform,
    FunctionTransform,
    Transformation,
    get_transformation,
)

if TYPE_CHECKING:
  from .dataframe import Dataframe


class GroupBy:
  """A Dataframe whose rows are grouped by one or more key columns.

  >>> import pyarrow as pa
  >>> from groupwise.dataframe import Dataframe
  >>> df = Dataframe(pa.table({"team": ["red", "blue", "red"], "points": [10, 8, 6]}))
  >>> df.groupby("team").transform("cumsum").to_arrow().to_pydict()
  {'points': [10, 8, 16]}
  """
  def __init__(self, df: "Dataframe", keys: list[str], sort: bool = True, dropna: bool = True) -> None:
    """
    :param df: The dataframe being grouped.
    :param keys: The columns to group by.
    :param sort: Sort the groups by their key.
    :param dropna: Discard the rows where the key is null.
    """
    self.df = df
    self.keys = keys
    self.sort = sort
    self.dropna = dropna

  def __str__(self) -> str:
    return f"GroupBy(keys={self.keys}, {self.df})"

  def __iter__(self) -> Iterator[tuple[tuple, pa.RecordBatch]]:
    """Iterate over the ``(key, rows)`` of each group.

    This is what ``apply`` does under the hood, and it's a
    convenient way to look at what each group contains.
    """
    batch = materialize(self.df.node)
    if batch is None:
      return
    grouping = Grouping(batch, self.keys, sort=self.sort, dropna=self.dropna)
    for idx, key in enumerate(grouping.key_values):
      yield key, grouping.take(idx)

  def agg(self, spec: Any = None, **named: tuple[str, Any]) -> "Dataframe":
    """Reduce each group to a single row.

    The result has the key columns followed by one column
    for each aggregation, and one row for each group.
    """
    aggregations = resolve_aggregations(spec, named, self.df, self.keys)
    return self.df.__class__(
      AggregateNode(self.keys, aggregations, self.df.node, sort=self.sort, dropna=self.dropna)
    )

  aggregate = agg

  def transform(self, spec: Any = None, *, keep_columns: bool = False, **named: tuple[str, Any]) -> "Dataframe":
    """Compute a value for each row of each group.

    The result has exactly the same rows of the original dataframe,
    in the same order. Aggregations (like ``"mean"``) are broadcast
    to all the rows of their group.

    :param keep_columns: Keep the original columns in the result,
                         by default only the transformed columns are returned.
    """
    transforms = resolve_transformations(spec, named, self.df, self.keys)
    return self.df.__class__(
      TransformNode(
        self.keys,
        transforms,
        self.df.node,
        select=None if keep_columns else [],
        dropna=self.dropna,
      )
    )

  def apply(self, func: Callable[[pa.RecordBatch], Any], *, include_keys: bool = True,
            result_name: str = "result") -> "Dataframe":
    """Invoke ``func`` on the rows of each group and combine the results.

    :param func: Function receiving each group as a :class:`pyarrow.RecordBatch`.
    :param include_keys: Provide also the key columns to the function.
    :param result_name: The column name for results that are single values or arrays.
    """
    return self.df.__class__(
      ApplyNode(
        self.keys,
        func,
        self.df.node,
        sort=self.sort,
        dropna=self.dropna,
        include_keys=include_keys,
        result_name=result_name,
      )
    )

  def size(self) -> "Dataframe":
    """Number of rows in each group."""
    return self.agg(size=(None, "size"))

  def count(self) -> "Dataframe":
    """Number of non null values in each group for each column."""
    return self.agg("count")

  def sum(self) -> "Dataframe":
    return self.agg("sum")

  def mean(self) -> "Dataframe":
    return self.agg("mean")

  def min(self) -> "Dataframe":
    return self.agg("min")

  def max(self) -> "Dataframe":
    return self.agg("max")


def function_name(func: Any) -> str:
  """Name used for the output column of a function in a list."""
  if isinstance(func, str):
    return func
  elif isinstance(func, Aggregation):
    return func.name
  return getattr(func, "__name__", func.__class__.__name__)


def resolve_spec(spec: Any, named: dict[str, tuple[str, Any]], df: "Dataframe",
                 keys: Sequence[str]) -> dict[str, tuple[str, Any]]:
  """Normalize the ways functions can be provided to {output_name: (column, function)}.

  The columns of the dataframe are only looked up when
  the function has to be applied to all columns.
  """
  if spec is None and not named:
    raise ValueError("No function was provided")

  resolved: dict[str, tuple[str, Any]] = {}
  if isinstance(spec, dict):
    for column, funcs in spec.items():
      if isinstance(funcs, (list, tuple)):
        for func in funcs:
          resolved[f"{column}_{function_name(func)}"] = (column, func)
      else:
        resolved[column] = (column, funcs)
  elif isinstance(spec, (list, tuple)):
    for column in [c for c in df.columns if c not in keys]:
      for func in spec:
        resolved[f"{column}_{function_name(func)}"] = (column, func)
  elif spec is not None:
    for column in [c for c in df.columns if c not in keys]:
      resolved[column] = (column, spec)

  for name, (column, func) in named.items():
    resolved[name] = (column, func)
  return resolved


def resolve_aggregations(spec: Any, named: dict[str, tuple[str, Any]], df: "Dataframe",
                         keys: Sequence[str] = ()) -> dict[str, Aggregation]:
  """Build the aggregations for ``agg`` arguments."""
  aggregations = {}
  for name, (column, func) in resolve_spec(spec, named, df, keys).items():
    if isinstance(func, Aggregation):
      aggregations[name] = func
    elif isinstance(func, str):
      aggregations[name] = get_aggregation(func, column)
    elif callable(func):
      aggregations[name] = FunctionAggregation(column, func)
    else:
      raise TypeError(f"Invalid aggregation for {name}: {func!r}")
  return aggregations


def resolve_transformations(spec: Any, named: dict[str, tuple[str, Any]], df: "Dataframe",
                            keys: Sequence[str] = ()) -> dict[str, Transformation]:
  """Build the transformations for ``transform`` arguments."""
  transforms = {}
  for name, (column, func) in resolve_spec(spec, named, df, keys).items():
    if isinstance(func, Transformation):
      transforms[name] = func
    elif isinstance(func, Aggregation):
      transforms[name] = BroadcastTransform(func)
    elif isinstance(func, str):
      transforms[name] = get_transformation(func, column)
    elif callable(func):
      transforms[name] = FunctionTransform(column, func)
    else:
      raise TypeError(f"Invalid transformation for {name}: {func!r}")
  return transforms
