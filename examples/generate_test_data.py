import os
import csv
import random

if not os.path.exists("data"):
    os.mkdir("data")

if not os.path.exists("data/players.csv"):
  # Genera players.csv
  teams = ["red", "blue", "green", "yellow", "black", "white", "orange", "purple"]
  roles = ["guard", "forward", "center"]
  rows = []
  for i in range(200_000):
    team = random.choice(teams)
    role = random.choice(roles)
    points = random.randint(0, 40)
    assists = random.randint(0, 15)
    rows.append([team, role, f"player{i}", points, assists])

  with open('data/players.csv', 'w', newline='') as f:
    writer = csv.writer(f)
    writer.writerow(["team", "role", "player", "points", "assists"])
    writer.writerows(rows)
