"""Dependency graph engine: cycle checks, blocked-set computation, analytics, rendering."""
