"""Security tests: password hashing, JWT handling, role gates, SAP code exposure."""
import uuid

import pytest
from httpx import AsyncClient, ASGITransport
from jose import JWTError, jwt

from app.core.config import settings
from app.core.deps import get_current_user
from app.core.security import create_access_token, decode_token, hash_password, verify_password
from app.main import app
from app.models.user import User


# ─── Fixtures ─────────────────────────────────────────────────────────────────

class FakeUser:
    """Minimal user stub for dependency overrides."""

    def __init__(self, role: str = "Employee", sap_codes: list[str] | None = None):
        self.id = uuid.UUID("f96955d0-752f-4e0c-b1dc-d26d8dd1460e")
        self.email = "user@example.com"
        self.name = "Test User"
        self.role = role
        self.is_active = True
        self.deleted_at = None
        self.sap_codes = sap_codes or []


# ─── Passwords ────────────────────────────────────────────────────────────────

def test_password_hash_roundtrip():
    hashed = hash_password("changeme123")
    assert hashed != "changeme123"
    assert verify_password("changeme123", hashed) is True
    assert verify_password("wrong", hashed) is False


# ─── Tokens ───────────────────────────────────────────────────────────────────

def test_access_token_carries_subject_and_role():
    token = create_access_token(subject="abc", role="Finance Officer")
    payload = decode_token(token)
    assert payload["sub"] == "abc"
    assert payload["role"] == "Finance Officer"
    assert payload["type"] == "access"


def test_token_signed_with_other_secret_is_rejected():
    forged = jwt.encode({"sub": "abc", "type": "access"}, "not-the-secret", algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(JWTError):
        decode_token(forged)


@pytest.mark.asyncio
async def test_non_access_token_type_returns_401():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "type": "refresh"},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


# ─── SAP codes ────────────────────────────────────────────────────────────────

def test_sap_codes_by_role():
    employee = User(role="Employee", sap_code_1="E-12345-0001", sap_code_2="E-12345-0002")
    sul = User(role="SUL", sap_code_1="E-12345-0001", sap_code_2="E-12345-0002")
    finance = User(role="Finance Officer", sap_code_1="E-12345-0001")

    assert employee.sap_codes == ["E-12345-0001", "E-12345-0002"]
    assert sul.sap_codes == ["E-12345-0001"]
    assert finance.sap_codes == []


@pytest.mark.asyncio
async def test_users_me_exposes_sap_codes():
    async def override():
        return FakeUser(role="SUL", sap_codes=["E-12345-0001"])

    app.dependency_overrides[get_current_user] = override
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/users/me")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()
    assert data["sap_codes"] == ["E-12345-0001"]
    assert "password_hash" not in data
