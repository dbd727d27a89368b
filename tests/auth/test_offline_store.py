"""Tests for the file-backed offline session cache."""

from datetime import timedelta

import msgspec

from gp51link.auth.offline import OfflineSessionStore
from gp51link.store.types import AuthUser


class TestOfflineSessionStore:
    def test_store_then_load(self, offline_store: OfflineSessionStore) -> None:
        user = AuthUser(id="user-1", email="fleet_admin@gp51.local")

        offline_store.store("fleet_admin", "secret", user, "jwt")
        session = offline_store.load("fleet_admin")

        assert session is not None
        assert session.user == user
        assert session.access_token == "jwt"
        assert session.is_valid

    def test_password_is_not_stored_in_clear(self, offline_store, tmp_path) -> None:
        offline_store.store("fleet_admin", "secret", None, "jwt")

        raw = (tmp_path / "offline_session_fleet_admin.json").read_bytes()

        assert b"secret" not in raw
        assert msgspec.json.decode(raw)["password_hash"].startswith("$argon2id$")

    def test_missing_session(self, offline_store: OfflineSessionStore) -> None:
        assert offline_store.load("nobody") is None

    def test_expired_session(self, offline_store: OfflineSessionStore) -> None:
        offline_store.store("fleet_admin", "secret", None, "jwt", ttl=-timedelta(minutes=1))

        assert offline_store.load("fleet_admin") is None

    def test_corrupt_file(self, offline_store, tmp_path) -> None:
        (tmp_path / "offline_session_fleet_admin.json").write_text("{not json")

        assert offline_store.load("fleet_admin") is None

    def test_file_without_password_hash_is_ignored(self, offline_store, tmp_path) -> None:
        (tmp_path / "offline_session_fleet_admin.json").write_text(
            '{"username": "fleet_admin", "expires_at": "2999-01-01T00:00:00Z"}'
        )

        assert offline_store.load("fleet_admin") is None

    def test_clear(self, offline_store: OfflineSessionStore) -> None:
        offline_store.store("fleet_admin", "secret", None, "jwt")

        offline_store.clear("fleet_admin")
        offline_store.clear("fleet_admin")

        assert offline_store.load("fleet_admin") is None

    def test_username_is_sanitised(self, offline_store, tmp_path) -> None:
        offline_store.store("../evil user", "secret", None, "jwt")

        assert [p.name for p in tmp_path.iterdir()] == ["offline_session_.._evil_user.json"]
        assert offline_store.load("../evil user") is not None


class TestAuthenticate:
    """Tests for password checks against stored offline sessions."""

    def test_matching_password(self, offline_store: OfflineSessionStore) -> None:
        offline_store.store("fleet_admin", "secret", None, "jwt")

        session = offline_store.authenticate("fleet_admin", "secret")

        assert session is not None
        assert session.access_token == "jwt"

    def test_wrong_password(self, offline_store: OfflineSessionStore) -> None:
        offline_store.store("fleet_admin", "secret", None, "jwt")

        assert offline_store.authenticate("fleet_admin", "WRONG-PASSWORD") is None

    def test_corrupt_hash(self, offline_store, tmp_path) -> None:
        (tmp_path / "offline_session_fleet_admin.json").write_text(
            '{"username": "fleet_admin", "password_hash": "not-a-hash",'
            ' "expires_at": "2999-01-01T00:00:00Z"}'
        )

        assert offline_store.authenticate("fleet_admin", "secret") is None

    def test_nothing_stored(self, offline_store: OfflineSessionStore) -> None:
        assert offline_store.authenticate("fleet_admin", "secret") is None
