"""
Pytest fixtures for ledger tests.

Sections:
    - Account Fixtures: system and user accounts
    - Funded Fixtures: a user with money already on the ledger
"""

import uuid

import pytest

from payments.ledger.models import AccountType
from payments.ledger.services import LedgerService
from payments.ledger.tests.factories import LedgerAccountFactory


# ==========================================================================
# Account Fixtures
# ==========================================================================


@pytest.fixture
def owner_id():
    """Ledger owner; the ledger only needs a UUID, not a User row."""
    return uuid.uuid4()


@pytest.fixture
def external_account(db):
    """External funding account; may go negative."""
    return LedgerService.external_account()


@pytest.fixture
def user_balance_account(db, owner_id):
    return LedgerAccountFactory(type=AccountType.USER_BALANCE, owner_id=owner_id)


@pytest.fixture
def user_escrow_account(db, owner_id):
    return LedgerAccountFactory(type=AccountType.USER_ESCROW, owner_id=owner_id)


@pytest.fixture
def inactive_account(db):
    """Deactivated account; entries touching it must be rejected."""
    return LedgerAccountFactory(is_active=False)


# ==========================================================================
# Funded Fixtures
# ==========================================================================


@pytest.fixture
def funded_owner(db, owner_id):
    """An owner with 10000 cents of available balance and no escrow."""
    LedgerService.credit(owner_id, 10000, "Initial funding", idempotency_key="fund")
    return owner_id
