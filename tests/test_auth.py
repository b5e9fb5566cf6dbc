"""Tests for authentication."""
import uuid

import pytest
from app.services.auth_service import AuthService
from app.utils.security import create_refresh_token, verify_password, create_access_token, decode_token, token_subject


def test_password_hashing():
    """Test password hashing and verification."""
    password = "testpassword123"
    hashed = AuthService.hash_password(password)

    assert hashed != password
    assert verify_password(password, hashed)
    assert not verify_password("wrongpassword", hashed)
    assert not verify_password(password, "not-a-bcrypt-hash")


def test_jwt_token_creation():
    """Test JWT token creation and decoding."""
    data = {"sub": "user123", "email": "test@example.com"}
    token = create_access_token(data)

    assert token is not None
    assert isinstance(token, str)

    decoded = decode_token(token)
    assert decoded["sub"] == "user123"
    assert decoded["email"] == "test@example.com"
    assert decoded["type"] == "access"
    assert decode_token(create_refresh_token({"sub": "user123"}))["type"] == "refresh"


def test_decode_rejects_garbage():
    with pytest.raises(ValueError):
        decode_token("not.a.token")


@pytest.mark.asyncio
async def test_authenticate_user(db_session, test_user):
    """Test user authentication."""
    # Test correct credentials
    user = await AuthService.authenticate_user(
        db_session,
        "test@example.com",
        "testpassword",
    )
    assert user is not None
    assert user.email == "test@example.com"

    # Test incorrect password
    user = await AuthService.authenticate_user(
        db_session,
        "test@example.com",
        "wrongpassword",
    )
    assert user is None

    # Test non-existent user
    user = await AuthService.authenticate_user(
        db_session,
        "nonexistent@example.com",
        "password",
    )
    assert user is None


@pytest.mark.asyncio
async def test_login_refresh_and_me(client, test_user):
    response = await client.post(
        "/api/v1/auth/login", json={"email": "test@example.com", "password": "testpassword"}
    )
    assert response.status_code == 200
    tokens = response.json()
    assert tokens["token_type"] == "bearer"

    response = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}
    )
    assert response.status_code == 200
    assert response.json()["email"] == "test@example.com"
    assert [role["name"] for role in response.json()["roles"]] == ["admin"]
    assert response.json()["last_login_at"] is not None

    response = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert response.status_code == 200
    assert response.json()["access_token"]

    response = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]}
    )
    assert response.status_code == 401

    # A refresh token is not an access token
    response = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, db_session, test_user):
    response = await client.post(
        "/api/v1/auth/login", json={"email": "test@example.com", "password": "nope"}
    )
    assert response.status_code == 401


def test_token_subject_checks_type_and_subject():
    user_id = uuid.uuid4()
    access = create_access_token({"sub": str(user_id)})

    assert token_subject(access) == user_id
    with pytest.raises(ValueError):
        token_subject(access, "refresh")
    with pytest.raises(ValueError):
        token_subject(create_access_token({"sub": "user123"}))
