"""Query plan nodes that compute aggregations.

Aggregating means *reducing* each group of rows
to a single summary row. Frequently when analysing data
it is necessary to compute statistics like the min, max,
average, etc... of the data for each group.

For example, given the following data::

    team, player, points
    red,  ann,    10
    blue, bob,    8
    red,  cid,    6
    blue, dan,    13

We could group by team and compute the sum of the points
to get::

    team, points
    blue, 21
    red,  16

The output has one row for each group, whatever the
number of rows that were part of the group.

The aggregate node doesn't need to load all the data in memory.
Each batch is grouped on its own and for each group a partial
result is computed, those partial results are then
combined (*reduced*) into the final result once all
the batches have been consumed.
"""

import abc
import logging
import math
from typing import Any, Callable

import pyarrow as pa
import pyarrow.compute as pc

from .. import utils
from .base import QueryPlanNode, common_type
from .grouping import Grouping

log = logging.getLogger(__name__)

__all__ = (
    "AggregateNode",
    "Aggregation",
    "SumAggregation",
    "MinAggregation",
    "MaxAggregation",
    "CountAggregation",
    "SizeAggregation",
    "MeanAggregation",
    "VarAggregation",
    "StdAggregation",
    "MedianAggregation",
    "FirstAggregation",
    "LastAggregation",
    "NUniqueAggregation",
    "FunctionAggregation",
    "get_aggregation",
    "UnknownAggregationError",
)


class AggregateNode(QueryPlanNode):
    """Group data and compute aggregations.

    >>> import pyarrow as pa
    >>> from groupwise.compute import SumAggregation, PyArrowTableDataSource
    >>> data = pa.record_batch({
    ...    'team': pa.array(['red', 'blue', 'red', 'blue', 'red']),
    ...    'points': pa.array([10, 8, 6, 13, 14])
    ... })
    >>> aggregate = AggregateNode(["team"], {"total_points": SumAggregation("points")},
    ...                           PyArrowTableDataSource(data))
    >>> next(aggregate.batches())
    pyarrow.RecordBatch
    team: string
    total_points: int64
    ----
    team: ["blue","red"]
    total_points: [21,30]
    """

    def __init__(
        self,
        keys: list[str],
        aggregations: dict[str, "Aggregation"],
        child: QueryPlanNode,
        sort: bool = True,
        dropna: bool = True,
    ) -> None:
        """
        :param keys: The columns to group by, no keys aggregates the whole data.
        :param aggregations: The aggregations to compute in the form of {"new_col_name": Aggregation}.
        :param child: The child node that will provide the data to aggregate.
        :param sort: Sort the groups by key, otherwise keep them in order of appearance.
        :param dropna: Discard the rows that have a null key.
        """
        self.keys = keys
        self.aggregations = aggregations
        self.child = child
        self.sort = sort
        self.dropna = dropna

    def __str__(self) -> str:
        return f"AggregateNode(keys={self.keys}, aggregations={self.aggregations}, {self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Compute the aggregations for each group.

        For each recordbatch yielded by the child node,
        split the rows in groups and compute the partial
        aggregation results of each group.

        Once all batches were consumed, reduce the partial
        results and emit a single batch with one row for each group.
        """
        # Partial aggregation results for each key in order of appearance:
        #   chunks_data = {key_value: {aggr_name: [aggr_value1, aggr_value2, ...]}}
        chunks_data: dict[tuple, dict[str, list[Any]]] = {}
        schema = None
        for batch in self.child.batches():
            schema = batch.schema
            grouping = Grouping(batch, self.keys, sort=False, dropna=self.dropna)
            for idx, keyval in enumerate(grouping.key_values):
                group = grouping.take(idx)
                partials = chunks_data.setdefault(keyval, {})
                for name, aggregation in self.aggregations.items():
                    partials.setdefault(name, []).append(
                        aggregation.compute_chunk(group)
                    )

        if schema is None or not chunks_data:
            # No data, no groups.
            return

        log.debug(
            "Reducing %d groups for aggregations %s", len(chunks_data), self.aggregations
        )
        result = self.reduce_aggregations(chunks_data, schema)
        if self.sort and self.keys:
            result = result.take(
                pc.sort_indices(
                    result,
                    sort_keys=[(k, "ascending") for k in self.keys],
                    null_placement="at_end",
                )
            )
        yield result

    def reduce_aggregations(
        self, chunks_data: dict[tuple, dict[str, list[Any]]], schema: pa.Schema
    ) -> pa.RecordBatch:
        """Reduce the partial aggregation results to the final aggregation results.

        For example if the data of "red" was split in 3 batches, chunks_data might be::

            {("red",): {"total_points": [10, 20, 30]}}

        The result will be::

            {"team": ["red"], "total_points": [60]}
        """
        result_batch_data: dict[str, pa.Array] = {}
        for keyidx, key in enumerate(self.keys):
            result_batch_data[key] = pa.array(
                [keyval[keyidx] for keyval in chunks_data],
                type=schema.field(key).type,
            )
        for aggrname, aggregation in self.aggregations.items():
            result_batch_data[aggrname] = scalars_to_array(
                [aggregation.reduce(partials[aggrname]) for partials in chunks_data.values()]
            )
        return pa.record_batch(result_batch_data)


def scalars_to_array(scalars: list[pa.Scalar]) -> pa.Array:
    """Build an array out of a list of scalars.

    The type of the array is the one all the scalars can be
    converted to, so a mix of integers and floats leads to floats.

    >>> scalars_to_array([pa.scalar(2), pa.scalar(None), pa.scalar(4.5)]).to_pylist()
    [2.0, None, 4.5]
    """
    value_type = common_type([s.type for s in scalars])
    return pa.array([s.as_py() for s in scalars], type=value_type)


class Aggregation(abc.ABC):
    """Base class for aggregations.

    Every aggregation is expected to implement
    a method to compute any needed intermediate results
    on a single chunk of data and then provide a reduce method
    to combine the intermediate results into a final result.
    """

    #: The name used to refer to the aggregation, like "sum" or "mean".
    name: str = ""

    def __init__(self, column: str) -> None:
        self.column = column

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column})"

    __repr__ = __str__

    @abc.abstractmethod
    def compute_chunk(self, batch: pa.RecordBatch) -> Any: ...

    @abc.abstractmethod
    def reduce(self, chunks: list[Any]) -> pa.Scalar: ...

    def aggregate(self, batch: pa.RecordBatch) -> pa.Scalar:
        """Compute the aggregation on a batch containing all the data at once."""
        return self.reduce([self.compute_chunk(batch)])


class SimpleAggregation(Aggregation):
    """Provide a base implementation for simple aggregations like min,max,sum.

    Simple aggregations are those where the function applied to compute
    intermediate results for a single chunk of data is the same as the function
    applied to combine the intermediate results into the final.

    For example ``sum([1, 2, 3])`` is the same as ``sum([sum([1, 2]), 3])``.
    """

    @abc.abstractmethod
    def _aggregate(self, data: pa.Array) -> pa.Scalar: ...

    def compute_chunk(self, batch: pa.RecordBatch) -> pa.Scalar:
        return self._aggregate(batch.column(self.column))

    def reduce(self, chunks: list[pa.Scalar]) -> pa.Scalar:
        return self._aggregate(scalars_to_array(chunks))


class SumAggregation(SimpleAggregation):
    """Compute the sum of an aggregated column.

    Null values are skipped, a group with only null values sums to 0.
    """

    name = "sum"

    def _aggregate(self, data: pa.Array) -> pa.Scalar:
        return pc.sum(data, min_count=0)


class MinAggregation(SimpleAggregation):
    """Compute the min of an aggregated column."""

    name = "min"

    def _aggregate(self, data: pa.Array) -> pa.Scalar:
        return pc.min(data)


class MaxAggregation(SimpleAggregation):
    """Compute the max of an aggregated column."""

    name = "max"

    def _aggregate(self, data: pa.Array) -> pa.Scalar:
        return pc.max(data)


class CountAggregation(Aggregation):
    """Compute the count of the non null values of a column.

    This is based on computing the counts for each intermediate batch
    and then sum them to compute the final result.
    """

    name = "count"

    def compute_chunk(self, batch: pa.RecordBatch) -> pa.Scalar:
        """Compute the count of the column in a single batch."""
        return pc.count(batch.column(self.column))

    def reduce(self, chunks: list[pa.Scalar]) -> pa.Scalar:
        """Sum the counts of all intermediate results to the final count."""
        return pc.sum(scalars_to_array(chunks))


class SizeAggregation(Aggregation):
    """Compute the number of rows of a group, including nulls.

    Unlike other aggregations, the size doesn't depend
    on any column, so the column is optional.
    """

    name = "size"

    def __init__(self, column: str | None = None) -> None:
        super().__init__(column)

    def compute_chunk(self, batch: pa.RecordBatch) -> int:
        return batch.num_rows

    def reduce(self, chunks: list[int]) -> pa.Scalar:
        return pa.scalar(sum(chunks), type=pa.int64())


class MeanAggregation(Aggregation):
    """Compute the mean of an aggregated column.

    This is based by computing count and sum of the column
    for each intermediate batch and then dividing
    the sum of all intermediate results by the count
    of all intermediate results.

    The mean is always a floating point value,
    and it's null when the group has no values.
    """

    name = "mean"

    def compute_chunk(self, batch: pa.RecordBatch) -> tuple[int, float]:
        """Compute the count and sum of the column in a single batch."""
        col = batch.column(self.column)
        total = pc.sum(col, min_count=0).cast(pa.float64())
        return (pc.count(col).as_py(), total.as_py())

    def reduce(self, chunks: list[tuple[int, float]]) -> pa.Scalar:
        """Compute the mean of the column from the intermediate sums and counts."""
        count = sum(chunk[0] for chunk in chunks)
        total = sum(chunk[1] for chunk in chunks)
        if count == 0:
            return pa.scalar(None, type=pa.float64())
        return pa.scalar(total / count, type=pa.float64())


class VarAggregation(Aggregation):
    """Compute the variance of an aggregated column.

    Each chunk provides its count, mean and sum of squared
    differences from the mean, which can be combined
    pairwise without having to look at the data again
    (Chan et al. parallel algorithm).

    ``ddof`` are the delta degrees of freedom, the default
    of 1 computes the sample variance.
    """

    name = "var"

    def __init__(self, column: str, ddof: int = 1) -> None:
        super().__init__(column)
        self.ddof = ddof

    def compute_chunk(self, batch: pa.RecordBatch) -> tuple[int, float, float]:
        col = batch.column(self.column)
        count = pc.count(col).as_py()
        if count == 0:
            return (0, 0.0, 0.0)
        mean = pc.mean(col).as_py()
        m2 = pc.variance(col, ddof=0).as_py() * count
        return (count, mean, m2)

    def reduce(self, chunks: list[tuple[int, float, float]]) -> pa.Scalar:
        count, mean, m2 = 0, 0.0, 0.0
        for chunk_count, chunk_mean, chunk_m2 in chunks:
            if chunk_count == 0:
                continue
            total = count + chunk_count
            delta = chunk_mean - mean
            mean += delta * chunk_count / total
            m2 += chunk_m2 + delta**2 * count * chunk_count / total
            count = total

        if count - self.ddof <= 0:
            return pa.scalar(None, type=pa.float64())
        return pa.scalar(self._finalize(m2 / (count - self.ddof)), type=pa.float64())

    def _finalize(self, variance: float) -> float:
        return variance


class StdAggregation(VarAggregation):
    """Compute the standard deviation of an aggregated column."""

    name = "std"

    def _finalize(self, variance: float) -> float:
        return math.sqrt(variance)


class MedianAggregation(Aggregation):
    """Compute the median of an aggregated column.

    The median can't be computed from partial medians,
    so each chunk provides its non null values and
    the median is computed on all of them at the end.
    """

    name = "median"

    def compute_chunk(self, batch: pa.RecordBatch) -> pa.Array:
        return pc.drop_null(batch.column(self.column))

    def reduce(self, chunks: list[pa.Array]) -> pa.Scalar:
        values = pa.concat_arrays(chunks)
        if len(values) == 0:
            return pa.scalar(None, type=pa.float64())
        return pc.quantile(values, q=0.5, interpolation="linear")[0]


class FirstAggregation(Aggregation):
    """The first non null value of a column in each group."""

    name = "first"
    _pick = 0

    def compute_chunk(self, batch: pa.RecordBatch) -> pa.Scalar:
        values = pc.drop_null(batch.column(self.column))
        if len(values) == 0:
            return pa.scalar(None, type=values.type)
        return values[self._pick]

    def reduce(self, chunks: list[pa.Scalar]) -> pa.Scalar:
        return self.compute_chunk(
            pa.record_batch({self.column: scalars_to_array(chunks)})
        )


class LastAggregation(FirstAggregation):
    """The last non null value of a column in each group."""

    name = "last"
    _pick = -1


class NUniqueAggregation(Aggregation):
    """Count the distinct non null values of a column in each group."""

    name = "nunique"

    def compute_chunk(self, batch: pa.RecordBatch) -> pa.Array:
        return pc.unique(pc.drop_null(batch.column(self.column)))

    def reduce(self, chunks: list[pa.Array]) -> pa.Scalar:
        return pc.count_distinct(pa.concat_arrays(chunks))


class FunctionAggregation(Aggregation):
    """Aggregate a column through a custom function.

    The function receives all the values of the column
    for a group as a :class:`pyarrow.Array` and must
    return a single value.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> def spread(values):
    ...     return pc.max(values).as_py() - pc.min(values).as_py()
    >>> FunctionAggregation("points", spread).aggregate(
    ...     pa.record_batch({"points": [10, 6, 14]})
    ... )
    <pyarrow.Int64Scalar: 8>
    """

    def __init__(self, column: str, func: Callable[[pa.Array], Any]) -> None:
        super().__init__(column)
        self.func = func
        self.name = getattr(func, "__name__", "function")

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column}, {utils.inspect.get_qualname(self.func)})"

    __repr__ = __str__

    def compute_chunk(self, batch: pa.RecordBatch) -> pa.Array:
        return batch.column(self.column)

    def reduce(self, chunks: list[pa.Array]) -> pa.Scalar:
        result = self.func(pa.concat_arrays(chunks))
        if isinstance(result, pa.Scalar):
            return result
        return pa.scalar(result)


AGGREGATIONS: dict[str, type[Aggregation]] = {
    aggregation.name: aggregation
    for aggregation in (
        SumAggregation,
        MinAggregation,
        MaxAggregation,
        CountAggregation,
        SizeAggregation,
        MeanAggregation,
        VarAggregation,
        StdAggregation,
        MedianAggregation,
        FirstAggregation,
        LastAggregation,
        NUniqueAggregation,
    )
}


def get_aggregation(name: str, column: str) -> Aggregation:
    """Build an aggregation by its name.

    >>> get_aggregation("mean", "points")
    MeanAggregation(points)
    """
    try:
        aggregation = AGGREGATIONS[name]
    except KeyError:
        raise UnknownAggregationError(
            f"Unknown aggregation {name!r}, available aggregations are {sorted(AGGREGATIONS)}"
        ) from None
    return aggregation(column)


class UnknownAggregationError(ValueError):
    """The requested aggregation does not exist."""
