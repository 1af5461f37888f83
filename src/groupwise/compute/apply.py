"""Query plan nodes that apply custom functions to groups.

Aggregations and transformations have a fixed shape:
one row per group or one row per input row.
Apply is the most flexible of the group-wise operations:
each group is provided to a custom function as a whole,
with all its columns, and the shape of the result depends
on what the function returns.

* A single value leads to **one row for each group**,
  like an aggregation.
* A ``dict`` leads to one row for each group with one
  column for each entry of the dictionary.
* A table leads to **as many rows as the table has**,
  for each group. The function could return the same rows
  it received, less rows (like the top N rows of the group)
  or even more rows.

In all cases the key of the group is prepended to the result,
so that it's possible to know which group each row came from.

The flexibility comes at a cost: nothing can be known
about the result until the function has been invoked on all groups,
and all the rows of a group must be in memory at the same time.
"""

import logging
from typing import Any, Callable

import pyarrow as pa

from .. import utils
from .aggregate import scalars_to_array
from .base import QueryPlanNode, materialize
from .grouping import Grouping

log = logging.getLogger(__name__)

__all__ = ("ApplyNode", "ApplyResultError")

SCALAR, ROW, ROWS = "scalar", "row", "rows"


class ApplyNode(QueryPlanNode):
    """Group data and invoke a function for each group.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> from groupwise.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({
    ...    'team': ['red', 'blue', 'red', 'blue'],
    ...    'points': [10, 8, 6, 13],
    ... })
    >>> def spread(group):
    ...     points = group.column("points")
    ...     return pc.max(points).as_py() - pc.min(points).as_py()
    >>> apply = ApplyNode(["team"], spread, PyArrowTableDataSource(data), result_name="spread")
    >>> next(apply.batches()).to_pydict()
    {'team': ['blue', 'red'], 'spread': [5, 4]}

    When the function returns a table, the rows of all groups
    are concatenated, for example to pick the best row of each group:

    >>> def best(group):
    ...     return group.take(pc.sort_indices(group, sort_keys=[("points", "descending")])[:1])
    >>> next(ApplyNode(["team"], best, PyArrowTableDataSource(data)).batches()).to_pydict()
    {'team': ['blue', 'red'], 'points': [13, 10]}
    """

    def __init__(
        self,
        keys: list[str],
        func: Callable[[pa.RecordBatch], Any],
        child: QueryPlanNode,
        sort: bool = True,
        dropna: bool = True,
        include_keys: bool = True,
        result_name: str = "result",
    ) -> None:
        """
        :param keys: The columns to group by, no keys provides the whole data to the function.
        :param func: The function receiving the rows of each group as a :class:`pyarrow.RecordBatch`.
        :param child: The child node that will provide the data.
        :param sort: Sort the groups by key, otherwise keep them in order of appearance.
        :param dropna: Discard the rows that have a null key.
        :param include_keys: Provide the key columns to the function together with the other columns.
        :param result_name: The name of the column for results that are not tables or dicts.
        """
        self.keys = keys
        self.func = func
        self.child = child
        self.sort = sort
        self.dropna = dropna
        self.include_keys = include_keys
        self.result_name = result_name

    def __str__(self) -> str:
        return f"ApplyNode(keys={self.keys}, func={utils.inspect.get_qualname(self.func)}, {self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Invoke the function on each group and combine the results."""
        batch = materialize(self.child)
        if batch is None:
            return

        grouping = Grouping(batch, self.keys, sort=self.sort, dropna=self.dropna)
        if not len(grouping):
            return

        if self.include_keys:
            columns = batch.schema.names
        else:
            columns = [c for c in batch.schema.names if c not in self.keys]

        kinds = set()
        results = []
        for idx in range(len(grouping)):
            group = grouping.take(idx).select(columns)
            kind, result = self.normalize_result(self.func(group))
            kinds.add(kind)
            results.append(result)
        log.debug("Applied %s to %d groups", self, len(results))

        if len(kinds) > 1:
            raise ApplyResultError(
                f"Function returned results of different kinds for different groups: {sorted(kinds)}"
            )

        kind = kinds.pop()
        if kind == SCALAR:
            yield self.combine_scalars(grouping, results)
        elif kind == ROW:
            yield self.combine_rows(grouping, results)
        else:
            yield self.combine_tables(grouping, results)

    def normalize_result(self, result: Any) -> tuple[str, Any]:
        """Detect the kind of result and convert it to Arrow."""
        if isinstance(result, pa.Scalar):
            return SCALAR, result
        elif isinstance(result, dict):
            return ROW, result
        elif isinstance(result, pa.RecordBatch):
            return ROWS, pa.Table.from_batches([result])
        elif isinstance(result, pa.Table):
            return ROWS, result
        elif isinstance(result, (pa.Array, pa.ChunkedArray, list, tuple)):
            return ROWS, pa.table({self.result_name: result})

        # Any other value Arrow knows how to store is a single value.
        try:
            return SCALAR, pa.scalar(result)
        except (pa.ArrowInvalid, pa.ArrowTypeError, pa.ArrowNotImplementedError, OverflowError) as e:
            raise ApplyResultError(
                f"Unsupported result type {type(result).__name__} returned by {utils.inspect.get_qualname(self.func)}"
            ) from e

    def combine_scalars(self, grouping: Grouping, results: list[pa.Scalar]) -> pa.RecordBatch:
        """One row for each group with the key and the returned value."""
        return pa.record_batch(
            {**grouping.key_arrays(), self.result_name: self.combine_values(self.result_name, results)}
        )

    def combine_rows(
        self, grouping: Grouping, results: list[dict[str, Any]]
    ) -> pa.RecordBatch:
        """One row for each group with the key and the entries of the dict.

        The columns are in the order of the entries of the first dict.
        """
        names = list(results[0])
        if any(set(result) != set(names) for result in results):
            raise ApplyResultError(
                "Function returned dictionaries with different entries for different groups"
            )
        return pa.record_batch(
            {
                **grouping.key_arrays(),
                **{
                    name: self.combine_values(name, [result[name] for result in results])
                    for name in names
                    if name not in self.keys
                },
            }
        )

    def combine_values(self, name: str, values: list[Any]) -> pa.Array:
        """Join the values returned for each group in a single column."""
        try:
            return scalars_to_array(
                [v if isinstance(v, pa.Scalar) else pa.scalar(v) for v in values]
            )
        except (pa.ArrowInvalid, pa.ArrowTypeError, pa.ArrowNotImplementedError) as e:
            raise ApplyResultError(
                f"Function returned values of different types for {name} in different groups: {e}"
            ) from e

    def combine_tables(
        self, grouping: Grouping, results: list[pa.Table]
    ) -> pa.RecordBatch:
        """Concatenate the rows of all groups, each one prefixed by its key.

        Groups that returned no rows don't dictate the type of the columns.
        """
        names = set(results[0].column_names)
        for result in results:
            if set(result.column_names) != names:
                raise ApplyResultError(
                    "Function returned tables with different schemas for different groups: "
                    f"columns {sorted(names)} vs {sorted(result.column_names)}"
                )
        try:
            table = pa.concat_tables(results, promote_options="permissive")
        except (pa.ArrowInvalid, pa.ArrowTypeError) as e:
            raise ApplyResultError(
                f"Function returned tables with different schemas for different groups: {e}"
            ) from e

        # Repeat the key of each group for as many rows as the group returned.
        repeats = pa.array(
            [idx for idx, result in enumerate(results) for _ in range(result.num_rows)],
            type=pa.int64(),
        )
        keys = {name: column.take(repeats) for name, column in grouping.key_arrays().items()}
        values = {
            name: table.column(name).combine_chunks()
            for name in table.column_names
            if name not in keys
        }
        return pa.record_batch({**keys, **values})


class ApplyResultError(ValueError):
    """The results returned by the applied function can't be combined."""
