"""
Model package initializer.

This module exists to make sure SQLAlchemy's registry is populated in any runtime
that uses the ORM (import script, reporting callers, Alembic).
"""

# Import side-effects: register ORM mappings.
from billsight.models import (  # noqa: F401
    billing,
    consumption,
    import_log,
    inventory,
)
