import math
import statistics

import pyarrow as pa
import pytest

from groupwise.compute import PyArrowTableDataSource
from groupwise.compute.aggregate import (
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

TEST_DATA = pa.record_batch(
    {
        "city": pa.array(
            ["New York", "New York", "Los Angeles", "Los Angeles", "New York"]
        ),
        "shop": pa.array(["Shop A", "Shop B", "Shop A", "Shop A2", "Shop B"]),
        "n_employees": pa.array([10, 15, 8, 12, 20]),
    }
)


def _aggregate(keys, aggregation, data=TEST_DATA, **kwargs):
    aggregate = AggregateNode(
        keys, {"result": aggregation}, PyArrowTableDataSource(data), **kwargs
    )
    return next(aggregate.batches())


@pytest.mark.parametrize("keys", [["city"], ["city", "shop"]])
def test_basic_aggregation(keys):
    result = _aggregate(keys, SumAggregation("n_employees"))

    if keys == ["city"]:
        assert result.column_names == ["city", "result"]
        assert result.column(0).to_pylist() == ["Los Angeles", "New York"]
        assert result.column(1).to_pylist() == [20, 45]
    else:
        assert result.column_names == ["city", "shop", "result"]
        assert result.column(0).to_pylist() == [
            "Los Angeles",
            "Los Angeles",
            "New York",
            "New York",
        ]
        assert result.column(1).to_pylist() == ["Shop A", "Shop A2", "Shop A", "Shop B"]
        assert result.column(2).to_pylist() == [8, 12, 10, 35]


@pytest.mark.parametrize("keys", [["city"], ["city", "shop"]])
def test_aggregate_node_str(keys):
    aggregate = AggregateNode(
        keys,
        {"total_employees": SumAggregation("n_employees")},
        PyArrowTableDataSource(TEST_DATA),
    )
    assert str(aggregate) == (
        "AggregateNode(keys=%r, aggregations={'total_employees': SumAggregation(n_employees)}, "
        "PyArrowTableDataSource(columns=['city', 'shop', 'n_employees'], rows=5))"
        % (keys,)
    )


def test_order_of_appearance():
    result = _aggregate(["city"], SumAggregation("n_employees"), sort=False)
    assert result.column(0).to_pylist() == ["New York", "Los Angeles"]
    assert result.column(1).to_pylist() == [45, 20]


@pytest.mark.parametrize(
    "aggregation, expected",
    [
        (MinAggregation("n_employees"), [8, 10]),
        (MaxAggregation("n_employees"), [12, 20]),
        (CountAggregation("n_employees"), [2, 3]),
        (SizeAggregation(), [2, 3]),
        (MeanAggregation("n_employees"), [10.0, 15.0]),
        (VarAggregation("n_employees"), [8.0, 25.0]),
        (MedianAggregation("n_employees"), [10.0, 15.0]),
        (FirstAggregation("shop"), ["Shop A", "Shop A"]),
        (LastAggregation("shop"), ["Shop A2", "Shop B"]),
        (NUniqueAggregation("shop"), [2, 2]),
    ],
)
def test_aggregations(aggregation, expected):
    result = _aggregate(["city"], aggregation)
    assert result.column(0).to_pylist() == ["Los Angeles", "New York"]
    assert result.column(1).to_pylist() == expected


def test_std_aggregation():
    result = _aggregate(["city"], StdAggregation("n_employees"))
    la, ny = result.column(1).to_pylist()
    assert la == pytest.approx(math.sqrt(8))
    assert ny == pytest.approx(5.0)


def test_mean_is_float():
    result = _aggregate(["city", "shop"], MeanAggregation("n_employees"))
    assert result.column(2).type == pa.float64()
    assert result.column(2).to_pylist() == [8.0, 12.0, 10.0, 17.5]


def test_std_of_single_value_is_null():
    result = _aggregate(["city", "shop"], StdAggregation("n_employees"))
    assert result.column(2).to_pylist()[0] is None
    assert result.column(2).to_pylist()[3] == pytest.approx(math.sqrt(12.5))


def test_function_aggregation():
    def spread(values):
        return max(values.to_pylist()) - min(values.to_pylist())

    result = _aggregate(["city"], FunctionAggregation("n_employees", spread))
    assert result.column(1).to_pylist() == [4, 10]
    assert str(FunctionAggregation("n_employees", spread)).startswith(
        "FunctionAggregation(n_employees, test_aggregate."
    )


def test_function_aggregation_mixed_int_and_float():
    data = pa.record_batch({"team": ["red", "red", "red", "blue", "blue"], "points": [1, 2, 3, 4, 5]})

    def median(values):
        return statistics.median(values.to_pylist())

    result = _aggregate(["team"], FunctionAggregation("points", median), data=data, sort=False)
    assert result.to_pydict() == {"team": ["red", "blue"], "result": [2.0, 4.5]}
    assert result.schema.field("result").type == pa.float64()


def test_no_keys_aggregates_everything():
    result = _aggregate([], SumAggregation("n_employees"))
    assert result.column_names == ["result"]
    assert result.column(0).to_pylist() == [65]


def test_nulls():
    data = pa.record_batch(
        {"team": ["red", "red", "blue", None], "points": [None, None, 8, 3]}
    )
    source = PyArrowTableDataSource(data)
    aggregate = AggregateNode(
        ["team"],
        {
            "sum": SumAggregation("points"),
            "mean": MeanAggregation("points"),
            "count": CountAggregation("points"),
            "size": SizeAggregation(),
            "first": FirstAggregation("points"),
        },
        source,
    )
    assert next(aggregate.batches()).to_pydict() == {
        "team": ["blue", "red"],
        "sum": [8, 0],
        "mean": [8.0, None],
        "count": [1, 0],
        "size": [1, 2],
        "first": [8, None],
    }

    with_null_keys = AggregateNode(
        ["team"], {"size": SizeAggregation()}, source, dropna=False
    )
    assert next(with_null_keys.batches()).to_pydict() == {
        "team": ["blue", "red", None],
        "size": [1, 2, 1],
    }


@pytest.mark.parametrize(
    "aggregation",
    [
        SumAggregation("n_employees"),
        MeanAggregation("n_employees"),
        StdAggregation("n_employees"),
        MedianAggregation("n_employees"),
        NUniqueAggregation("shop"),
        FirstAggregation("shop"),
        LastAggregation("shop"),
    ],
)
def test_partial_results_over_multiple_batches(aggregation):
    # Each row in its own batch, so each group is split in multiple chunks.
    table = pa.Table.from_batches([TEST_DATA.slice(i, 1) for i in range(TEST_DATA.num_rows)])
    split = _aggregate(["city"], aggregation, data=table)
    whole = _aggregate(["city"], aggregation)
    assert split.column(0).to_pylist() == whole.column(0).to_pylist()
    for got, expected in zip(split.column(1).to_pylist(), whole.column(1).to_pylist()):
        if isinstance(expected, float):
            assert got == pytest.approx(expected)
        else:
            assert got == expected


def test_empty_data_emits_nothing():
    aggregate = AggregateNode(
        ["city"],
        {"total": SumAggregation("n_employees")},
        PyArrowTableDataSource(TEST_DATA.slice(0, 0)),
    )
    assert list(aggregate.batches()) == []


def test_get_aggregation():
    assert isinstance(get_aggregation("median", "x"), MedianAggregation)
    with pytest.raises(UnknownAggregationError, match="Unknown aggregation 'avg'"):
        get_aggregation("avg", "x")
