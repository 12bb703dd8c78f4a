"""
Economy Engine Test Suite
=========================

Test Organization
-----------------
- tests/unit/          : Service tests against a temporary SQLite database,
                         plus pure formula / event bus / logging tests
- tests/integration/   : PostgreSQL from testcontainers (constraints, row locks,
                         concurrent purchases)

Run a subset with markers:
    pytest -m unit
    pytest -m "integration and database"
"""
