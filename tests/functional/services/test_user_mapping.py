# tests/functional/services/test_user_mapping.py
from datetime import datetime, timezone

from accounts_api.models.user import UserCreate, UserUpdate
from accounts_api.services.user_mapping import map_over_user, map_user, sanitize_user


def test_sanitize_removes_secrets_and_keeps_expiries(make_user):
    expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
    doc = make_user(
        verification={"token": "v-tok", "expires": expires},
        reset_password={"token": "r-tok", "expires": expires},
    )

    public = sanitize_user(doc).model_dump(by_alias=True)

    assert "password" not in public
    assert public["verification"] == {"expires": expires}
    assert public["reset_password"] == {"expires": expires}
    # Input document is untouched
    assert doc["password"] == "stored-hash"
    assert doc["verification"]["token"] == "v-tok"


def test_sanitize_user_without_tokens(make_user):
    public = sanitize_user(make_user())

    assert public.id == "user-1"
    assert public.verification is None
    assert public.reset_password is None


def test_map_user_assigns_id_and_defaults():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)

    doc = map_user(UserCreate(username="newbie", email="newbie@example.com"), now=now)

    assert doc["_id"]
    assert doc["subroles"] == []
    assert doc["verified"] is False
    assert doc["created_at"] == doc["updated_at"] == now
    assert "password" not in doc


def test_map_over_user_copies_only_sent_fields(make_user):
    doc = make_user()

    map_over_user(UserUpdate(_id="user-1", last_name="Smith"), doc)

    assert doc["last_name"] == "Smith"
    assert doc["first_name"] == "John"
    assert doc["_id"] == "user-1"
