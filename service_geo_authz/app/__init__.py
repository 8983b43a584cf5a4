"""
Geographic Authorization service package.

Decides, per user and per node of the geographic area tree, whether the
user may see or modify data located in that node. It provides:

- app.main: FastAPI surface (access checks, authorization info, rules, batch lookups).
- app.hierarchy: Area model, in-memory tree snapshot, batch queries, area administration.
- app.authorization: Rule model, rule store, access evaluator, authorized-area builder.
- app.persistence: Repository interfaces with in-memory and PostgreSQL backends.

Guidelines:
- Authorization state is derived; never cache it across requests.
- Load rules and the tree once per request and resolve everything against that.
"""
