"""
hexsweep Test Suite.

- unit/: rate gate, quota, geometry, orchestrator, storage, collector tests
- integration/: pipeline runs and API endpoints over the in-memory store
- conftest.py: Shared fixtures; helpers.py: fake clock, provider and planner

Run tests with: pytest
"""
