import pytest

pytest.importorskip("passlib")

from app.core.security import admin_password_problems, hash_password, verify_password


def test_admin_password_policy_accepts_strong_password():
    assert admin_password_problems("StrongPass123!") == []


def test_admin_password_policy_lists_every_problem():
    problems = admin_password_problems("short")
    assert any("at least" in item for item in problems)
    assert any("digit" in item for item in problems)
    assert any("special" in item for item in problems)


def test_hash_round_trip():
    hashed = hash_password("StrongPass123!")
    valid, new_hash = verify_password("StrongPass123!", hashed)
    assert valid is True
    assert new_hash is None
    assert verify_password("wrong", hashed)[0] is False
