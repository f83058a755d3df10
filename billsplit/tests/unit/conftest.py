"""
tests/unit/conftest.py

Unit tests build ORM objects without an app, so every mapped class must be
registered before the first one is instantiated.
"""

from billsplit.app.models import (  # noqa: F401
    expense,
    group,
    group_balance,
    membership,
    refresh_token,
    settlement,
    split,
    user,
)
