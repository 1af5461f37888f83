import pyarrow as pa
import pyarrow.csv as csv
import pyarrow.compute as pc
import pytest

from groupwise.compute import (
    AggregateNode,
    RankTransform,
    SumAggregation,
    UnknownAggregationError,
    UnknownTransformError,
)
from groupwise.dataframe import Dataframe, GroupBy
from groupwise.dataframe.groupby import resolve_aggregations, resolve_transformations


@pytest.fixture
def df():
    return Dataframe(
        pa.table(
            {
                "team": ["red", "blue", "red", "blue", "red", "green"],
                "player": ["ann", "bob", "cid", "dan", "eve", "fay"],
                "points": [10, 8, 6, 13, 14, 7],
                "assists": [1, 4, 2, 0, 3, 5],
            }
        )
    )


def test_invalid_input():
    with pytest.raises(ValueError, match="Invalid input"):
        Dataframe({"team": ["red"]})


def test_open_csv(tmp_path):
    filename = str(tmp_path / "points.csv")
    csv.write_csv(pa.table({"team": ["red", "red"], "points": [1, 2]}), filename)
    df = Dataframe.open_csv(filename)
    assert df.columns == ["team", "points"]
    assert df.groupby("team").sum().to_arrow().to_pydict() == {
        "team": ["red"],
        "points": [3],
    }


def test_columns_of_computed_dataframe(df):
    assert df.groupby("team").size().columns == ["team", "size"]


def test_groupby_returns_groupby(df):
    grouped = df.groupby("team")
    assert isinstance(grouped, GroupBy)
    assert grouped.keys == ["team"]
    assert str(grouped).startswith("GroupBy(keys=['team'], Dataframe(PyArrowTableDataSource(")


def test_iterate_groups(df):
    groups = [(key, rows.num_rows) for key, rows in df.groupby("team")]
    assert groups == [(("blue",), 2), (("green",), 1), (("red",), 3)]


def test_agg_single_function_on_all_columns(df):
    result = df.groupby("team").agg("max").to_arrow()
    assert result.to_pydict() == {
        "team": ["blue", "green", "red"],
        "player": ["dan", "fay", "eve"],
        "points": [13, 7, 14],
        "assists": [4, 5, 3],
    }


def test_agg_list_of_functions(df):
    result = df.groupby("team").agg(["min", "max"]).to_arrow()
    assert result.column_names == [
        "team",
        "player_min",
        "player_max",
        "points_min",
        "points_max",
        "assists_min",
        "assists_max",
    ]


def test_agg_dict_and_named(df):
    result = df.groupby("team").agg(
        {"points": ["sum", "mean"], "assists": "sum"}, top=("player", "first")
    )
    assert result.to_arrow().to_pydict() == {
        "team": ["blue", "green", "red"],
        "points_sum": [21, 7, 30],
        "points_mean": [10.5, 7.0, 10.0],
        "assists": [4, 5, 6],
        "top": ["bob", "fay", "ann"],
    }


def test_agg_callable_and_aggregation_instance(df):
    def spread(values):
        return pc.max(values).as_py() - pc.min(values).as_py()

    result = df.groupby("team").agg(
        {"points": [spread]}, total=("points", SumAggregation("points"))
    )
    assert result.to_arrow().to_pydict() == {
        "team": ["blue", "green", "red"],
        "points_spread": [5, 0, 8],
        "total": [21, 7, 30],
    }


def test_agg_requires_functions(df):
    with pytest.raises(ValueError, match="No function"):
        df.groupby("team").agg()


def test_agg_unknown_function_fails_early(df):
    with pytest.raises(UnknownAggregationError):
        df.groupby("team").agg({"points": "average"})


def test_agg_builds_aggregate_node(df):
    result = df.groupby("team", sort=False).agg({"points": "sum"})
    assert isinstance(result.node, AggregateNode)
    assert result.node.sort is False
    assert result.to_arrow().column("team").to_pylist() == ["red", "blue", "green"]


def test_shortcuts(df):
    grouped = df.groupby("team")
    assert grouped.size().to_arrow().column("size").to_pylist() == [2, 1, 3]
    assert grouped.count().to_arrow().column("points").to_pylist() == [2, 1, 3]
    assert grouped.min().to_arrow().column("points").to_pylist() == [8, 7, 6]


def test_transform_keeps_rows(df):
    result = df.groupby("team").transform({"points": "sum"}).to_arrow()
    assert result.to_pydict() == {"points": [30, 21, 30, 21, 30, 7]}


def test_transform_keep_columns(df):
    result = df.groupby("team").transform(best=("points", "max"), keep_columns=True)
    assert result.to_arrow().column_names == ["team", "player", "points", "assists", "best"]
    assert result.to_arrow().column("best").to_pylist() == [14, 13, 14, 13, 14, 7]


def test_transform_callable_and_instances(df):
    result = df.groupby("team").transform(
        rank=("points", RankTransform("points", descending=True)),
        centered=("points", lambda values: pc.subtract(values, pc.min(values))),
        total=("points", SumAggregation("points")),
    )
    assert result.to_arrow().to_pydict() == {
        "rank": [2.0, 2.0, 3.0, 1.0, 1.0, 1.0],
        "centered": [4, 0, 0, 5, 8, 0],
        "total": [30, 21, 30, 21, 30, 7],
    }


def test_transform_unknown_function_fails_early(df):
    with pytest.raises(UnknownTransformError):
        df.groupby("team").transform({"points": "explode"})


def test_apply(df):
    def best(group):
        return group.take(pc.sort_indices(group, sort_keys=[("points", "descending")])[:1])

    result = df.groupby("team").apply(best).to_arrow()
    assert result.to_pydict() == {
        "team": ["blue", "green", "red"],
        "player": ["dan", "fay", "eve"],
        "points": [13, 7, 14],
        "assists": [0, 5, 3],
    }


def test_apply_scalar_result_name(df):
    result = df.groupby("team").apply(lambda g: g.num_rows, result_name="players")
    assert result.to_arrow().column_names == ["team", "players"]


def test_whole_dataframe_operations(df):
    assert df.agg({"points": "sum"}).to_arrow().to_pydict() == {"points": [58]}
    assert df.transform({"assists": "sum"}).to_arrow().to_pydict() == {"assists": [15] * 6}
    assert df.apply(lambda data: data.num_rows, result_name="rows").to_arrow().to_pydict() == {
        "rows": [6]
    }


def test_collect_and_show(df):
    collected = df.groupby("team").size().collect()
    assert collected.to_arrow().num_rows == 3
    assert collected.show().splitlines() == [
        "team  | size",
        "----- | ----",
        "blue  |    2",
        "green |    1",
        "red   |    3",
    ]


def test_empty_result():
    df = Dataframe(pa.record_batch({"team": pa.array([], pa.string()), "points": pa.array([], pa.int64())}))
    assert df.groupby("team").sum().to_arrow().num_rows == 0


def test_numeric_shortcuts():
    grouped = Dataframe(pa.table({"team": ["a", "b", "a"], "points": [1, 2, 4]})).groupby("team")
    assert grouped.sum().to_arrow().column("points").to_pylist() == [5, 2]
    assert grouped.mean().to_arrow().column("points").to_pylist() == [2.5, 2.0]
    assert grouped.max().to_arrow().column("points").to_pylist() == [4, 2]


def test_resolve_functions_with_any_keys_sequence(df):
    aggregations = resolve_aggregations("sum", {}, df)
    assert list(aggregations) == ["team", "player", "points", "assists"]

    aggregations = resolve_aggregations("sum", {}, df, ("team", "player"))
    assert list(aggregations) == ["points", "assists"]

    transforms = resolve_transformations("cumsum", {}, df, ("team",))
    assert list(transforms) == ["player", "points", "assists"]
