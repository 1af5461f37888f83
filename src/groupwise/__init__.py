"""groupwise

A guide, with code, to the group-wise operations of dataframes:
``.agg()``, ``.transform()`` and ``.apply()``.

The three operations are frequently confused, as they all
split the data into groups and compute something on each group.
What distinguishes them is the shape of their output:

* **agg** reduces each group to one summary row.
* **transform** keeps the shape of the input, values computed
  on a group are *broadcast* to every row of that group.
* **apply** lets the function decide, returning a value, a row
  or any number of rows for each group.

The package is constituted by multiple components, each
self documented in literate programming style:

* The Compute Engine, which implements grouping and the three operations
  as query plan nodes working on Apache Arrow data.
* The Dataframe API, which provides the familiar ``df.groupby(...).agg(...)``
  style of API on top of the compute engine.

The guide itself, with the examples of each operation, lives in the documentation.
"""

from . import compute, dataframe

__all__ = ("compute", "dataframe")
