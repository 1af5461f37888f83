"""Split data into groups of rows sharing the same key.

All group-wise operations start the same way: the rows
of the data are split into groups according to the value
of one or more *key* columns. Given::

    team, player, points
    red,  ann,    10
    blue, bob,    8
    red,  cid,    6

Grouping by ``team`` leads to two groups::

    blue -> rows [1]
    red  -> rows [0, 2]

What happens next is what distinguishes the operations:

* **agg** reduces each group to a single summary row.
* **transform** computes a value for each group and
  *broadcasts* it back to the rows of the group, so that
  the output has exactly as many rows as the input.
* **apply** hands each group to a function and lets
  the function decide the shape of the result.

The :class:`Grouping` only remembers the positions of the rows
of each group, the data itself is not copied until a group
is actually requested.
"""

import logging
from typing import Any, Iterator

import pyarrow as pa
import pyarrow.compute as pc

log = logging.getLogger(__name__)

__all__ = ("Grouping", "GroupingError")


class Grouping:
    """The groups of rows of a batch of data.

    >>> import pyarrow as pa
    >>> data = pa.record_batch({
    ...     "team": ["red", "blue", "red", None],
    ...     "points": [10, 8, 6, 3],
    ... })
    >>> grouping = Grouping(data, ["team"])
    >>> for key, positions in grouping:
    ...     print(key, positions.to_pylist())
    ('blue',) [1]
    ('red',) [0, 2]

    Rows with a null key are not part of any group unless
    ``dropna=False`` is provided, in which case null becomes
    a key like any other and is sorted last:

    >>> [key for key, _ in Grouping(data, ["team"], dropna=False)]
    [('blue',), ('red',), (None,)]

    With ``sort=False`` the groups are kept in the order
    they first appear in the data:

    >>> [key for key, _ in Grouping(data, ["team"], sort=False)]
    [('red',), ('blue',)]
    """

    def __init__(
        self,
        batch: pa.RecordBatch,
        keys: list[str],
        sort: bool = True,
        dropna: bool = True,
    ) -> None:
        """
        :param batch: The data to split in groups.
        :param keys: The columns to group by, when empty the whole batch is one group.
        :param sort: Sort the groups by their key, otherwise keep order of appearance.
        :param dropna: Discard rows where any of the keys is null.
        """
        missing = [k for k in keys if k not in batch.schema.names]
        if missing:
            raise GroupingError(
                f"Grouping columns {missing} not found, available columns are {batch.schema.names}"
            )

        self.batch = batch
        self.keys = list(keys)
        self.sort = sort
        self.dropna = dropna

        if not self.keys:
            groups = self._whole_batch_group()
        elif len(self.keys) == 1:
            groups = self._single_key_groups()
        else:
            groups = self._multi_key_groups()

        self.key_values: list[tuple[Any, ...]] = [key for key, _ in groups]
        self.positions: list[pa.Array] = [positions for _, positions in groups]
        log.debug(
            "Grouped %d rows by %s into %d groups",
            batch.num_rows,
            self.keys,
            len(self.positions),
        )

    def __str__(self) -> str:
        return f"Grouping(keys={self.keys}, groups={len(self)})"

    def __len__(self) -> int:
        return len(self.positions)

    def __iter__(self) -> Iterator[tuple[tuple[Any, ...], pa.Array]]:
        return zip(self.key_values, self.positions)

    def _whole_batch_group(self) -> list[tuple[tuple, pa.Array]]:
        """Without keys all the rows are part of one single group."""
        if self.batch.num_rows == 0:
            return []
        return [((), pa.array(range(self.batch.num_rows), type=pa.int64()))]

    def _single_key_groups(self) -> list[tuple[tuple, pa.Array]]:
        """Group by a single key using dictionary encoding.

        Dictionary encoding the key column gives us for free the
        unique values of the key (the dictionary) and, for each row,
        the index of its value in the dictionary. The dictionary
        is in order of appearance.
        """
        column = self.batch.column(self.keys[0])
        encoded = pc.dictionary_encode(
            column, null_encoding="mask" if self.dropna else "encode"
        )
        dictionary = encoded.dictionary

        if self.sort:
            order = pc.sort_indices(dictionary, null_placement="at_end").to_pylist()
        else:
            order = range(len(dictionary))

        groups = []
        for idx in order:
            # Rows with a masked (null) key compare as null and are skipped
            mask = pc.equal(encoded.indices, idx)
            positions = pc.indices_nonzero(mask).cast(pa.int64())
            groups.append(((dictionary[idx].as_py(),), positions))
        return groups

    def _multi_key_groups(self) -> list[tuple[tuple, pa.Array]]:
        """Group by multiple keys sorting the data.

        Dictionary encoding doesn't support combinations of columns,
        so we sort the rows by the keys. Once sorted, rows with the
        same key are adjacent and each group is a run of equal keys::

            blue, guard   -> group 1
            red,  center  -> group 2
            red,  center  -> group 2
            red,  guard   -> group 3

        The sort is stable, so within a group rows stay in their original order.
        """
        order = pc.sort_indices(
            self.batch,
            sort_keys=[(k, "ascending") for k in self.keys],
            null_placement="at_end",
        )
        key_columns = [self.batch.column(k).take(order).to_pylist() for k in self.keys]

        runs: list[tuple[tuple, list[int]]] = []
        current_key = None
        current_rows: list[int] = []
        for idx, row in enumerate(order.to_pylist()):
            row_key = tuple(column[idx] for column in key_columns)
            if current_rows and row_key != current_key:
                runs.append((current_key, current_rows))
                current_rows = []
            current_key = row_key
            current_rows.append(row)
        if current_rows:
            runs.append((current_key, current_rows))

        if self.dropna:
            runs = [(key, rows) for key, rows in runs if None not in key]
        if not self.sort:
            runs.sort(key=lambda run: run[1][0])

        return [(key, pa.array(rows, type=pa.int64())) for key, rows in runs]

    def take(self, group: int) -> pa.RecordBatch:
        """The rows of the ``group``-th group."""
        return self.batch.take(self.positions[group])

    def key_arrays(self) -> dict[str, pa.Array]:
        """The key columns with one entry for each group.

        The values are taken from the original data,
        so the key columns preserve their original type.
        """
        first_rows = pa.array(
            [positions[0].as_py() for positions in self.positions], type=pa.int64()
        )
        return {k: self.batch.column(k).take(first_rows) for k in self.keys}

    def scatter(self, pieces: list[pa.Array], type: pa.DataType) -> pa.Array:
        """Place one piece of data for each group back in the rows of the group.

        This is the reverse of grouping: given one array for each group,
        with as many values as the rows of the group, build a single
        array where each value is at the position of the row it belongs to.
        Rows that are not part of any group get a null value.

        >>> import pyarrow as pa
        >>> data = pa.record_batch({"team": ["red", "blue", "red"]})
        >>> grouping = Grouping(data, ["team"])
        >>> grouping.scatter([pa.array(["B"]), pa.array(["R1", "R2"])], pa.string()).to_pylist()
        ['R1', 'B', 'R2']
        """
        values = pa.concat_arrays([*pieces, pa.nulls(1, type=type)])
        no_group = len(values) - 1

        indices = [no_group] * self.batch.num_rows
        offset = 0
        for positions in self.positions:
            for idx, position in enumerate(positions.to_pylist()):
                indices[position] = offset + idx
            offset += len(positions)

        return values.take(pa.array(indices, type=pa.int64()))


class GroupingError(ValueError):
    """Data can't be grouped by the requested keys."""
