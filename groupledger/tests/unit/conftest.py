"""
tests/unit/conftest.py — Registers every model before unit tests build ORM objects.

Unit tests never call create_app(), so nothing else imports the full set of
model modules. Mapper configuration needs all of them to resolve the string
targets of relationship().
"""

from groupledger.app.models import (  # noqa: F401
    expense,
    group,
    ledger_entry,
    member,
    membership,
    receipt,
    settlement,
    split,
)
