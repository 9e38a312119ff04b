"""
Feature modules live under this package.

Each module owns its routes, models and store helpers, and reuses the platform
pieces (auth, RBAC, audit, JSON store, storage, DB session).
"""
