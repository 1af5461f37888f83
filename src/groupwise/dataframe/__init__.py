"""Dataframe library built on top of the groupwise compute engine.

A dataframe library is a tool designed to handle and manipulate structured data,
typically in the form of tables (i.e., rows and columns).

Most analyses on a dataframe end up being *group-wise*:
the rows are split in groups sharing the same value for some columns
and something is computed for each group. The ``pandas`` API,
which most dataframe libraries imitate, offers three ways to do that:

* ``df.groupby(keys).agg(...)`` to summarize each group in one row.
* ``df.groupby(keys).transform(...)`` to compute a value for every row,
  keeping the same shape of the input.
* ``df.groupby(keys).apply(...)`` to run any function on each group.

This module implements the same API on top of the
groupwise compute nodes, so that how each of them
works can be looked at in isolation.
"""

from .dataframe import Dataframe
from .groupby import GroupBy

__all__ = ("Dataframe", "GroupBy")
