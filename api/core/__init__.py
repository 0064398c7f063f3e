"""
Shared, cross-cutting code for the API.

`core/` holds the database wiring every feature depends on: configuration,
the pool wrapper, and the lifecycle manager that owns it. Keep feature-specific
SQL and HTTP handling in the corresponding feature package (e.g. `query/`).
"""
