import pytest


def test_get_user_model_is_custom_user():
    from django.contrib.auth import get_user_model

    User = get_user_model()

    assert User.__module__ == "config.users.models"
    assert User.__name__ == "User"
    assert User.USERNAME_FIELD == "email"


@pytest.mark.django_db
def test_new_user_is_bidder_with_public_id():
    from django.contrib.auth import get_user_model

    User = get_user_model()
    user = User.objects.create_user(email="bidder@example.com", password="pass12345")

    assert user.role == User.ROLE_BIDDER
    assert user.public_id is not None
    assert user.public_id != User.objects.create_user(email="b2@example.com", password="x").public_id
