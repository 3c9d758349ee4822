"""Tests for default user seeding."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.seed import default_users, seed_users
from app.services.role_sequence import ApprovalFlowTable


FLOWS = ApprovalFlowTable(
    default=["SUL", "Finance Officer"],
    flows={"SUL": ["Sales Director", "Finance Officer"]},
)


def make_mock_session(existing=None):
    mock_result = MagicMock()
    mock_result.scalars.return_value.first.return_value = existing

    mock_session = AsyncMock()
    mock_session.execute = AsyncMock(return_value=mock_result)
    mock_session.add = MagicMock()
    mock_session.commit = AsyncMock()
    return mock_session


def test_default_users_cover_every_approver_role():
    roles = {role for _, _, role in default_users(FLOWS)}
    assert roles == {"Admin", "Employee", "SUL", "Sales Director", "Finance Officer"}
    emails = [email for email, _, _ in default_users(FLOWS)]
    assert "finance.officer@example.com" in emails
    assert len(emails) == len(set(emails))


@pytest.mark.asyncio
async def test_seed_users_inserts_missing():
    db = make_mock_session(existing=None)

    with patch("app.core.seed.hash_password", return_value="hashed"):
        created = await seed_users(db, FLOWS)

    assert created == 5
    assert db.add.call_count == 5
    db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_seed_users_skips_existing():
    db = make_mock_session(existing=MagicMock())

    created = await seed_users(db, FLOWS)

    assert created == 0
    db.add.assert_not_called()
