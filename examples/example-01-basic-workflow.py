#!/usr/bin/env python3
#
# This script shows the basic steps that are involved in a typical planning scenario with relbound: setting up relations,
# formulating a query, computing a join plan and evaluating it.
#
# Requirements: none, all data is kept in memory.
#

# Step 0: imports
# The main relbound package provides access to all of the frequently-used parts of the library. The in-memory storage
# layer and the cost model presets are available as sub-modules.
import relbound as rb
from relbound import presets, storage

# Step 1: Relation setup
# Each relation is backed by at least one source. The first source stores the entire relation, further sources serve as
# additional access paths. Here, the movie relation is sorted by its id and additionally indexed by its year.
movies = [(1, "Alien", 1979), (2, "Heat", 1995), (3, "Ran", 1985), (4, "Se7en", 1995)]
movie_table = storage.table_source(movies, ["id", "title", "year"], sorted_prefix=1, position="pos")
movies_by_year = storage.table_source([(year, pos) for pos, (_, _, year) in enumerate(sorted(movies))], ["year", "pos"],
                                      sorted_prefix=1)
movie = rb.TableRelation("movie", ["id", "title", "year"], [int, str, int], [movie_table, movies_by_year],
                         constraints=[rb.DegreeConstraint.uniqueness("id", ["id", "title", "year"])])

cast = storage.table_source([(1, "Weaver"), (2, "Pacino"), (2, "De Niro"), (4, "Pitt"), (4, "Freeman")],
                            ["movie_id", "actor"], sorted_prefix=1)
cast_info = rb.TableRelation("cast_info", ["movie_id", "actor"], [int, str], [cast],
                             constraints=[rb.DegreeConstraint(0, 10, ["movie_id"], ["actor"])])

# Step 2: Query formulation
# Which actors played in movies from 1995?
query = rb.QueryGraph([rb.Atom(movie, {"m": "id", "t": "title", "y": "year"}),
                       rb.Atom(cast_info, {"m": "movie_id", "a": "actor"})],
                      constants={"y": 1995})

# Step 3: Planning
# The planner uses unit costs by default. Calibrated costs take the characteristics of the current machine into account.
planner = rb.JoinOrderPlanner(cost_model=presets.fetch("unit"), verbose=True)
plan = planner.plan(query)
print(plan.inspect())

# Step 4: Evaluation
# Results are produced lazily. The cursor can be iterated multiple times.
for title, actor in rb.execute(plan, query).tuples(["t", "a"]):
    print(title, actor)
