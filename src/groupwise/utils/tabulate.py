"""Format tabular data into a text table for print.

The `tabulate` function takes a `pyarrow.Table` or `pyarrow.RecordBatch`
and formats it into a text table. It is what the guide uses to show the
result of each example, so that the shape of the result is easy to see.

Numeric columns are aligned to the right, floats are shown with
a fixed number of decimals and nulls are shown as ``null``.

Example:

    >>> import pyarrow as pa
    >>> data = {
    ...     "team": ["red", "blue", "red"],
    ...     "points": [10, 8, None],
    ...     "share": [0.625, 1.0, 0.375],
    ... }
    >>> table = pa.RecordBatch.from_pydict(data)
    >>> print(tabulate(table))
    team | points | share
    ---- | ------ | -----
    red  |     10 |  0.62
    blue |      8 |  1.00
    red  |   null |  0.38
"""

from typing import Any

import pyarrow as pa


def tabulate(data: pa.Table | pa.RecordBatch, max_rows: int = 20, precision: int = 2) -> str:
    """Format a Table or RecordBatch into a text table.

    Only the first ``max_rows`` rows are shown, followed
    by a line telling how many rows were left out.

    >>> import pyarrow as pa
    >>> print(tabulate(pa.table({"n": [1, 2, 3]}), max_rows=2))
    n
    -
    1
    2
    ... and 1 more rows
    """
    cols = data.column_names
    numeric = [_is_numeric(field.type) for field in data.schema]
    rows = [
        [format_value(row[c], precision) for c in cols]
        for row in data.slice(0, max_rows).to_pylist()
    ]

    colsizes = compute_max_colsize(cols, rows)
    header = [maketablerow(cols, colsizes, numeric)]
    separator = [maketablerow(["-" * size for size in colsizes], colsizes, numeric)]
    textrows = [maketablerow(row, colsizes, numeric) for row in rows]

    table = "\n".join(header + separator + textrows)
    if data.num_rows > max_rows:
        table += f"\n... and {data.num_rows - max_rows} more rows"
    return table


def _is_numeric(type: pa.DataType) -> bool:
    return (
        pa.types.is_integer(type)
        or pa.types.is_floating(type)
        or pa.types.is_decimal(type)
    )


def compute_max_colsize(cols: list[str], rows: list[list[str]]) -> list[int]:
    """Compute the maximum size of each column in a table."""
    return [
        max([len(row[colidx]) for row in rows] + [len(cols[colidx])])
        for colidx, _ in enumerate(cols)
    ]


def maketablerow(cols: list[str], colsizes: list[int], right_aligned: list[bool]) -> str:
    """Make a table row with the given column sizes.

    Trailing spaces are stripped, so that the last column
    doesn't need to be padded.
    """
    return " | ".join(
        col.rjust(colsizes[idx]) if right_aligned[idx] else col.ljust(colsizes[idx])
        for idx, col in enumerate(cols)
    ).rstrip()


def format_value(v: Any, precision: int = 2) -> str:
    """Format a value to be printed in the table.

    This function will format floats to the given precision,
    and truncate long strings.
    """
    if v is None:
        return "null"
    elif isinstance(v, bool):
        return "true" if v else "false"
    elif isinstance(v, float):
        return f"{v:.{precision}f}"

    v = str(v)
    if len(v) > 30:
        v = v[:27] + "..."
    return v
