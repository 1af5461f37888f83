import pyarrow.compute as pc

from groupwise.dataframe import Dataframe

df = Dataframe.open_csv("data/players.csv")

print(df.groupby(["team", "role"]).agg({"points": ["sum", "mean"]}).show())

print(df.groupby("team").transform(team_avg=("points", "mean"), keep_columns=True).show(max_rows=10))

def top3(group):
  order = pc.sort_indices(group, sort_keys=[("points", "descending")])
  return group.take(order[:3])

print(df.groupby("team").apply(top3).show())
