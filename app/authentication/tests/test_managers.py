"""
Tests for UserManager.
"""

import pytest

from authentication.models import User


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user()."""

    def test_creates_user_with_email_and_password(self, db):
        user = User.objects.create_user(email="alex@example.com", password="SecurePass123!")

        assert user.pk is not None
        assert user.check_password("SecurePass123!") is True
        assert user.is_staff is False

    def test_normalizes_email_domain(self, db):
        user = User.objects.create_user(email="Alex@EXAMPLE.COM")

        assert user.email == "Alex@example.com"

    def test_user_without_password_cannot_log_in(self, db):
        user = User.objects.create_user(email="invited@example.com")

        assert user.has_usable_password() is False

    def test_raises_when_email_missing(self, db):
        with pytest.raises(ValueError, match="Email field must be set"):
            User.objects.create_user(email="")


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser()."""

    def test_sets_admin_flags(self, db):
        admin = User.objects.create_superuser(email="ops@example.com", password="x")

        assert admin.is_staff is True
        assert admin.is_superuser is True

    def test_rejects_explicit_non_staff(self, db):
        with pytest.raises(ValueError, match="is_staff=True"):
            User.objects.create_superuser(email="ops@example.com", password="x", is_staff=False)


class TestUserNames:
    """Tests for display-name helpers used on bills."""

    def test_full_name_falls_back_to_email(self, db):
        user = User.objects.create_user(email="noname@example.com")

        assert user.get_full_name() == "noname@example.com"
        assert user.get_short_name() == "noname"
