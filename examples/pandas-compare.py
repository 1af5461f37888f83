import sys
import time

import pandas

from groupwise.dataframe import Dataframe

try:
    operation = sys.argv[1]
except IndexError:
    operation = None

df = Dataframe.open_csv("data/players.csv")
pdf = pandas.read_csv("data/players.csv")


def spread(group):
    return max(group.column("points").to_pylist()) - min(group.column("points").to_pylist())


if operation == "agg":
    ours = lambda: df.groupby("team").agg({"points": "mean"}).to_arrow()
    theirs = lambda: pdf.groupby("team")["points"].agg("mean")
elif operation == "transform":
    ours = lambda: df.groupby("team").transform({"points": "mean"}).to_arrow()
    theirs = lambda: pdf.groupby("team")["points"].transform("mean")
elif operation == "apply":
    ours = lambda: df.groupby("team").apply(spread).to_arrow()
    theirs = lambda: pdf.groupby("team")["points"].apply(lambda s: s.max() - s.min())
else:
    print("Operation must be agg, transform or apply")
    sys.exit(1)

for name, run in (("groupwise", ours), ("pandas", theirs)):
    start = time.time()
    result = run()
    end = time.time()
    print(name, "ROWS:", len(result), "TIME:", round(end - start, 2))
