"""
Backend package for the campus marketplace API.

This package provides a FastAPI application with storage, identity and
database abstractions so the service can run against managed backends in
production and fully in memory during development and tests.
"""
