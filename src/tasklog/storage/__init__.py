"""SQLite cache storage: ORM tables, engine policy, and migrations."""
