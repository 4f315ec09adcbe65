"""
Shared, cross-cutting code for the API.

`core/` holds the small building blocks every entity relies on: the
connection provider (`db`), the internal request bus (`bus`), settings and
logging. Entity-specific SQL lives in `entities/`, the generic CRUD dispatch
in `crud/`.
"""
