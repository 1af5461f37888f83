"""Query plan nodes that compute group-wise transformations.

A transformation computes new data for each group, but unlike
an aggregation it doesn't reduce the groups: the output has
exactly the same number of rows as the input, in the same order.

Given::

    team, player, points
    red,  ann,    10
    blue, bob,    8
    red,  cid,    6

the average points of each team *transformed* back on the rows is::

    team, player, points, team_avg
    red,  ann,    10,     8.0
    blue, bob,    8,      8.0
    red,  cid,    6,      8.0

There are two kinds of transformations:

* **Broadcast** transformations compute a single value
  for each group, like an aggregation does, and then replicate
  that value on every row of the group.
* **Window** transformations compute a different value for each
  row of the group, like a running total or the rank of the
  row within its group.

Any function that returns a single value or as many values as
the rows of the group can be used as a transformation.
"""

import abc
import logging
from typing import Any, Callable

import pyarrow as pa
import pyarrow.compute as pc

from .. import utils
from .aggregate import AGGREGATIONS, Aggregation, get_aggregation
from .base import QueryPlanNode, common_type, materialize
from .grouping import Grouping

log = logging.getLogger(__name__)

__all__ = (
    "TransformNode",
    "Transformation",
    "BroadcastTransform",
    "CumSumTransform",
    "CumMinTransform",
    "CumMaxTransform",
    "CumCountTransform",
    "RankTransform",
    "ShiftTransform",
    "DiffTransform",
    "ForwardFillTransform",
    "BackwardFillTransform",
    "FunctionTransform",
    "get_transformation",
    "TransformLengthError",
    "UnknownTransformError",
)


class TransformNode(QueryPlanNode):
    """Group data and transform each group keeping its rows.

    >>> import pyarrow as pa
    >>> from groupwise.compute import PyArrowTableDataSource, get_aggregation
    >>> data = pa.record_batch({
    ...    'team': ['red', 'blue', 'red'],
    ...    'points': [10, 8, 6],
    ... })
    >>> transform = TransformNode(
    ...     ["team"], {"team_avg": BroadcastTransform(get_aggregation("mean", "points"))},
    ...     PyArrowTableDataSource(data)
    ... )
    >>> next(transform.batches()).to_pydict()
    {'team': ['red', 'blue', 'red'], 'points': [10, 8, 6], 'team_avg': [8.0, 8.0, 8.0]}

    Rows that are not part of any group, because their key is null,
    get a null value.
    """

    def __init__(
        self,
        keys: list[str],
        transforms: dict[str, "Transformation"],
        child: QueryPlanNode,
        select: list[str] | None = None,
        dropna: bool = True,
    ) -> None:
        """
        :param keys: The columns to group by, no keys transforms the whole data.
        :param transforms: The transformations in the form of {"new_col_name": Transformation}.
        :param child: The child node that will provide the data to transform.
        :param select: The input columns to keep in the output.
                       ``None`` means all columns, ``[]`` only the transformed ones.
        :param dropna: Discard the rows that have a null key.
        """
        self.keys = keys
        self.transforms = transforms
        self.child = child
        self.select = select
        self.dropna = dropna

    def __str__(self) -> str:
        return f"TransformNode(keys={self.keys}, transforms={self.transforms}, select={self.select}, {self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Transform all the data emitted by the child node.

        The rows of a group can come from any of the child batches,
        so all batches are loaded before they can be grouped.

        For each transformation, the groups are transformed one by one
        and the results placed back at the position of the rows they
        were computed from.
        """
        batch = materialize(self.child)
        if batch is None:
            return

        grouping = Grouping(batch, self.keys, sort=False, dropna=self.dropna)
        log.debug(
            "Transforming %d rows in %d groups with %s",
            batch.num_rows,
            len(grouping),
            self.transforms,
        )

        result = batch if self.select is None else batch.select(self.select)
        for name, transformation in self.transforms.items():
            result = result.append_column(
                name, self.transform_groups(grouping, transformation)
            )
        yield result

    def transform_groups(
        self, grouping: Grouping, transformation: "Transformation"
    ) -> pa.Array:
        """Apply a transformation to each group and merge back the results."""
        pieces = []
        for idx, positions in enumerate(grouping.positions):
            group = grouping.take(idx)
            value = transformation.transform(group)
            if isinstance(value, pa.Scalar):
                # Broadcast the value to all the rows of the group.
                value = pa.repeat(value, len(positions))
            elif len(value) != len(positions):
                raise TransformLengthError(
                    f"{transformation} returned {len(value)} values for group "
                    f"{grouping.key_values[idx]} which has {len(positions)} rows"
                )
            pieces.append(value)

        value_type = common_type([piece.type for piece in pieces])
        pieces = [piece.cast(value_type) for piece in pieces]
        return grouping.scatter(pieces, value_type)


class Transformation(abc.ABC):
    """Base class for transformations.

    A transformation receives the rows of a group and
    returns either a :class:`pyarrow.Scalar`, which will be broadcast
    to all the rows of the group, or a :class:`pyarrow.Array`
    with exactly one value for each row of the group.
    """

    def __init__(self, column: str) -> None:
        self.column = column

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column})"

    __repr__ = __str__

    @abc.abstractmethod
    def transform(self, group: pa.RecordBatch) -> pa.Array | pa.Scalar: ...


class BroadcastTransform(Transformation):
    """Compute an aggregation for the group and broadcast it to every row.

    >>> import pyarrow as pa
    >>> BroadcastTransform(get_aggregation("max", "points")).transform(
    ...     pa.record_batch({"points": [10, 6, 14]})
    ... )
    <pyarrow.Int64Scalar: 14>
    """

    def __init__(self, aggregation: Aggregation) -> None:
        super().__init__(aggregation.column)
        self.aggregation = aggregation

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.aggregation})"

    __repr__ = __str__

    def transform(self, group: pa.RecordBatch) -> pa.Scalar:
        return self.aggregation.aggregate(group)


class CumSumTransform(Transformation):
    """Running total of a column within the group, nulls are skipped."""

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        return pc.cumulative_sum(group.column(self.column), skip_nulls=True)


class CumMinTransform(Transformation):
    """Running minimum of a column within the group."""

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        return pc.cumulative_min(group.column(self.column), skip_nulls=True)


class CumMaxTransform(Transformation):
    """Running maximum of a column within the group."""

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        return pc.cumulative_max(group.column(self.column), skip_nulls=True)


class CumCountTransform(Transformation):
    """Number each row of the group from 0 to the size of the group - 1."""

    def __init__(self, column: str | None = None) -> None:
        super().__init__(column)

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        return pa.array(range(group.num_rows), type=pa.int64())


class RankTransform(Transformation):
    """Rank of each row within its group.

    The ``method`` decides how rows with the same value are ranked:

    * ``average``: the average of the ranks the rows would have.
    * ``min`` / ``max``: the lowest or highest of those ranks.
    * ``first``: in order of appearance.
    * ``dense``: like min, but ranks increase by 1 between values.

    Ranks start at 1, rows with a null value have a null rank.

    >>> import pyarrow as pa
    >>> data = pa.record_batch({"points": [10, 6, 10, None]})
    >>> RankTransform("points").transform(data).to_pylist()
    [2.5, 1.0, 2.5, None]
    >>> RankTransform("points", method="dense", descending=True).transform(data).to_pylist()
    [1.0, 2.0, 1.0, None]
    """

    METHODS = ("average", "min", "max", "first", "dense")

    def __init__(
        self, column: str, method: str = "average", descending: bool = False
    ) -> None:
        if method not in self.METHODS:
            raise ValueError(f"Rank method must be one of {self.METHODS}, got {method!r}")
        super().__init__(column)
        self.method = method
        self.descending = descending

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        values = group.column(self.column)
        order = "descending" if self.descending else "ascending"

        def rank(tiebreaker: str) -> pa.Array:
            return pc.rank(
                values, sort_keys=order, null_placement="at_end", tiebreaker=tiebreaker
            ).cast(pa.float64())

        if self.method == "average":
            ranks = pc.divide(pc.add(rank("min"), rank("max")), 2.0)
        else:
            ranks = rank(self.method)
        return pc.if_else(pc.is_valid(values), ranks, pa.scalar(None, pa.float64()))


class ShiftTransform(Transformation):
    """Move the values of the group by ``periods`` rows.

    Positive periods move values forward, negative ones backward.
    The rows left without a value are null.

    >>> import pyarrow as pa
    >>> data = pa.record_batch({"points": [10, 6, 14]})
    >>> ShiftTransform("points").transform(data).to_pylist()
    [None, 10, 6]
    >>> ShiftTransform("points", periods=-2).transform(data).to_pylist()
    [14, None, None]
    """

    def __init__(self, column: str, periods: int = 1) -> None:
        super().__init__(column)
        self.periods = periods

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        return shift(group.column(self.column), self.periods)


class DiffTransform(ShiftTransform):
    """Difference between each value and the value ``periods`` rows before."""

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        values = group.column(self.column)
        return pc.subtract(values, shift(values, self.periods))


class ForwardFillTransform(Transformation):
    """Replace nulls with the last non null value of the group."""

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        return pc.fill_null_forward(group.column(self.column))


class BackwardFillTransform(Transformation):
    """Replace nulls with the next non null value of the group."""

    def transform(self, group: pa.RecordBatch) -> pa.Array:
        return pc.fill_null_backward(group.column(self.column))


class FunctionTransform(Transformation):
    """Transform a column through a custom function.

    The function receives the values of the column for
    a group as a :class:`pyarrow.Array` and can return:

    * a single value, that will be broadcast to the rows of the group.
    * an array or list with exactly one value for each row of the group.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> def share(values):
    ...     return pc.divide(values.cast(pa.float64()), pc.sum(values).as_py())
    >>> FunctionTransform("points", share).transform(
    ...     pa.record_batch({"points": [1, 3]})
    ... ).to_pylist()
    [0.25, 0.75]
    """

    def __init__(self, column: str, func: Callable[[pa.Array], Any]) -> None:
        super().__init__(column)
        self.func = func

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column}, {utils.inspect.get_qualname(self.func)})"

    __repr__ = __str__

    def transform(self, group: pa.RecordBatch) -> pa.Array | pa.Scalar:
        result = self.func(group.column(self.column))
        if isinstance(result, (pa.Scalar, pa.Array)):
            return result
        elif isinstance(result, pa.ChunkedArray):
            return result.combine_chunks()
        elif isinstance(result, (list, tuple)):
            return pa.array(result)
        return pa.scalar(result)


def shift(values: pa.Array, periods: int) -> pa.Array:
    """Shift the values of an array by ``periods`` positions filling with nulls."""
    if periods == 0:
        return values
    size = len(values)
    offset = min(abs(periods), size)
    nulls = pa.nulls(offset, type=values.type)
    if periods > 0:
        return pa.concat_arrays([nulls, values.slice(0, size - offset)])
    return pa.concat_arrays([values.slice(offset), nulls])


WINDOW_TRANSFORMS: dict[str, type[Transformation]] = {
    "cumsum": CumSumTransform,
    "cummin": CumMinTransform,
    "cummax": CumMaxTransform,
    "cumcount": CumCountTransform,
    "rank": RankTransform,
    "shift": ShiftTransform,
    "diff": DiffTransform,
    "ffill": ForwardFillTransform,
    "bfill": BackwardFillTransform,
}


def get_transformation(name: str, column: str) -> Transformation:
    """Build a transformation by its name.

    Any aggregation name leads to the aggregation being broadcast,
    other names refer to window transformations:

    >>> get_transformation("mean", "points")
    BroadcastTransform(MeanAggregation(points))
    >>> get_transformation("cumsum", "points")
    CumSumTransform(points)
    """
    if name in AGGREGATIONS:
        return BroadcastTransform(get_aggregation(name, column))
    try:
        transformation = WINDOW_TRANSFORMS[name]
    except KeyError:
        raise UnknownTransformError(
            f"Unknown transformation {name!r}, available transformations are "
            f"{sorted([*AGGREGATIONS, *WINDOW_TRANSFORMS])}"
        ) from None
    return transformation(column)


class TransformLengthError(ValueError):
    """A transformation returned a different number of rows than the group had."""


class UnknownTransformError(ValueError):
    """The requested transformation does not exist."""
