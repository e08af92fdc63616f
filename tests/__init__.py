"""
Runboard Test Suite
===================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with fakes and mocks (no external dependencies)
- tests/integration/   : Integration tests against Redis 7 via testcontainers
- tests/fakes.py       : In-memory store and guard with the production method surface

Testing Philosophy
------------------
- Unit tests: fast, isolated, cover validation, ordering and error translation
- Integration tests: run the real Lua scripts; they require Docker
- `pytest -m "not integration"` runs the unit suite alone
"""
