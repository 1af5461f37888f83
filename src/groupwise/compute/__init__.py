"""The groupwise Compute Engine

The compute engine defines the in-memory
format for query plans and the plan nodes
supported.

The compute engine is tightly bound to Apache Arrow,
thus the engine will expect to always deal with
:class:`pyarrow.RecordBatch` and emit a new RecordBatch
as the result of the node execution.

This allows to easily build compute pipelines like::

    (RecordBatch)-->Node1--(RecordBatch)-->Node2--(RecordBatch)-->...

Building a query plan requires to combine the nodes that we want
to be executed starting with a ``DataSource`` node as the
leaf node of a query:

>>> import pyarrow as pa
>>> data = pa.table({
...    "team": pa.array(["red", "blue", "red", "blue"]),
...    "points": pa.array([10, 8, 6, 13])
... })
>>>
>>> from groupwise.compute import PyArrowTableDataSource, AggregateNode, TransformNode
>>> from groupwise.compute import MaxAggregation, BroadcastTransform
>>> # One row per team
>>> query = AggregateNode(["team"], {"best": MaxAggregation("points")},
...                       PyArrowTableDataSource(data))
>>> for batch in query.batches():
...     print(batch.to_pydict())
{'team': ['blue', 'red'], 'best': [13, 10]}
>>> # One row per player
>>> query = TransformNode(["team"], {"best": BroadcastTransform(MaxAggregation("points"))},
...                       PyArrowTableDataSource(data))
>>> for batch in query.batches():
...     print(batch.to_pydict())
{'team': ['red', 'blue', 'red', 'blue'], 'points': [10, 8, 6, 13], 'best': [10, 13, 10, 13]}
"""

from .aggregate import (
    AggregateNode,
    CountAggregation,
    FirstAggregation,
    FunctionAggregation,
    LastAggregation,
    MaxAggregation,
    MeanAggregation,
    MedianAggregation,
    MinAggregation,
    NUniqueAggregation,
    SizeAggregation,
    StdAggregation,
    SumAggregation,
    UnknownAggregationError,
    VarAggregation,
    get_aggregation,
)
from .apply import ApplyNode, ApplyResultError
from .datasources import CSVDataSource, ParquetDataSource, PyArrowTableDataSource
from .grouping import Grouping, GroupingError
from .transform import (
    BackwardFillTransform,
    BroadcastTransform,
    CumCountTransform,
    CumMaxTransform,
    CumMinTransform,
    CumSumTransform,
    DiffTransform,
    ForwardFillTransform,
    FunctionTransform,
    RankTransform,
    ShiftTransform,
    TransformLengthError,
    TransformNode,
    UnknownTransformError,
    get_transformation,
)

__all__ = (
    "CSVDataSource",
    "ParquetDataSource",
    "PyArrowTableDataSource",
    "Grouping",
    "GroupingError",
    "AggregateNode",
    "CountAggregation",
    "FirstAggregation",
    "FunctionAggregation",
    "LastAggregation",
    "MaxAggregation",
    "MeanAggregation",
    "MedianAggregation",
    "MinAggregation",
    "NUniqueAggregation",
    "SizeAggregation",
    "StdAggregation",
    "SumAggregation",
    "VarAggregation",
    "get_aggregation",
    "UnknownAggregationError",
    "TransformNode",
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
    "ApplyNode",
    "ApplyResultError",
)
