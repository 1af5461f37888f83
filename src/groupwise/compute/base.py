"""Base classes and interfaces for the Compute Engine

This module defines the base components that are
necessary to represent a query plan and execute it.
"""

import abc
from typing import Iterator

import pyarrow as pa


class QueryPlanNode(abc.ABC):
    """A node of a query execution plan.

    The Query plan is represented as a tree
    of nodes. Each node is a step in the execution
    and all previous steps are children of the
    last one.

    For example a plan that loads data and then
    computes the total of each group might look like::

        LoadDataNode -> AggregateNode(keys, aggregations)

    Each Node accepts :class:`pyarrow.RecordBatch`
    data as its input and emits a new
    :class:`pyarrow.RecordBatch` as its output.

    The base `QueryPlanNode` class does nothing
    and purely acts as the interface that all nodes
    must implement. Actual work will be done
    in the subclasses.

    For example a simple node that takes data
    and just forwards it as is after printing
    its content can be implemented as::

        class DebugDataNode(QueryPlanNode):
            def __init__(self, child):
                self.child = child

            def batches(self):
                for b in self.child.batches():
                    print(b)
                    yield b

            def __str__(self):
                return f"DebugDataNode()"
    """

    RecordBatchesGenerator = Iterator[pa.RecordBatch]

    @abc.abstractmethod
    def batches(self) -> RecordBatchesGenerator:
        """Emits the batches for the next node.

        Each QueryPlan node is expected to be able to
        generate data that has to be provided to the next
        node in the plan.

        Usually this happens by consuming data from its
        child nodes, transforming it somehow, and yielding
        it back to the next consumer.
        """
        ...

    @abc.abstractmethod
    def __str__(self) -> str:
        """Human readable representation of the node."""
        ...


def materialize(node: QueryPlanNode) -> pa.RecordBatch | None:
    """Load all the data emitted by a node into a single RecordBatch.

    Aggregations can be computed one batch at the time,
    but transformations and apply need to see all the rows
    of a group at once, and the rows of a group might be spread
    across any number of batches. Those nodes have no choice
    but to load the whole data in memory.

    Returns ``None`` if the node emitted no batches at all.

    >>> import pyarrow as pa
    >>> from groupwise.compute import PyArrowTableDataSource
    >>> table = pa.Table.from_batches([
    ...     pa.record_batch({"x": [1, 2]}),
    ...     pa.record_batch({"x": [3]}),
    ... ])
    >>> materialize(PyArrowTableDataSource(table)).column("x").to_pylist()
    [1, 2, 3]
    """
    batches = list(node.batches())
    if not batches:
        return None

    table = pa.Table.from_batches(batches)
    return pa.RecordBatch.from_arrays(
        [column.combine_chunks() for column in table.columns], schema=table.schema
    )


def common_type(types: list[pa.DataType]) -> pa.DataType:
    """The type that values of all the given types can be converted to.

    Groups are computed one by one, so the same function can
    return an integer for a group and a float for another one.
    Null types are ignored and integers mixed with floats lead to floats.

    Raises :class:`pyarrow.ArrowTypeError` or :class:`pyarrow.ArrowInvalid`
    when the types have nothing in common.

    >>> common_type([pa.int64(), pa.null(), pa.float64()])
    DataType(double)
    >>> common_type([pa.null()])
    DataType(null)
    """
    types = [t for t in dict.fromkeys(types) if t != pa.null()]
    if not types:
        return pa.null()
    elif len(types) == 1:
        return types[0]

    schema = pa.unify_schemas(
        [pa.schema([("value", t)]) for t in types], promote_options="permissive"
    )
    return schema.field("value").type
