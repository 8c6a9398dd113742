"""Session manager and session store behaviour."""

from datetime import timedelta

import pytest

from models.auth_session import AuthSession
from models.base_model import utcnow
from utils.security import hash_value
from utils.sessions import DeviceContext, cookie_options, normalize_ip, normalize_user_agent

from conftest import UA_DESKTOP, UA_PHONE


@pytest.fixture
def user(app, make_user):
    return make_user(app)


def _rows(app):
    return app.extensions["storage"].get_session().query(AuthSession).all()


class TestNormalization:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("203.0.113.17", "203.0.113"),
            (" 10.1.2.3 ", "10.1.2"),
            ("2001:db8:85a3:0:0:8a2e:370:7334", "2001:0db8:85a3:0000"),
            ("2001:db8::1", "2001:0db8:0000:0000"),
            ("::ffff:198.51.100.7", "198.51.100"),
            ("", ""),
            (None, ""),
            ("not-an-ip", "not-an-ip"),
        ],
    )
    def test_normalize_ip(self, raw, expected):
        assert normalize_ip(raw) == expected

    def test_nearby_ipv4_addresses_share_a_prefix(self):
        assert normalize_ip("203.0.113.17") == normalize_ip("203.0.113.200")

    def test_normalize_user_agent(self):
        assert normalize_user_agent("  Mozilla/5.0 FOO ") == "mozilla/5.0 foo"
        assert normalize_user_agent(None) == ""

    def test_empty_context_has_no_hashes(self):
        ctx = DeviceContext()
        assert ctx.user_agent_hash is None
        assert ctx.ip_hash is None


class TestCreateSession:
    def test_stores_only_hashes(self, app, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        row = _rows(app)[0]
        assert row.refresh_token_hash == hash_value(issued.refresh_token)
        assert issued.refresh_token not in (row.refresh_token_hash, row.user_agent_hash, row.ip_hash)
        assert row.user_agent_hash == hash_value(normalize_user_agent(UA_DESKTOP))
        assert row.ip_hash == hash_value("203.0.113")
        assert row.revoked_at is None

    def test_refresh_expiry_and_access_claims(self, app, sessions, user, desktop):
        before = utcnow()
        issued = sessions.create_session(user, desktop)
        refresh_ttl = timedelta(milliseconds=app.config["REFRESH_TOKEN_TTL_MS"])
        assert before + refresh_ttl <= issued.session.expires_at <= utcnow() + refresh_ttl

        claims = sessions.signer.verify_token(issued.access_token, expected_type="access")
        assert claims["sub"] == user.id
        assert claims["sid"] == issued.session.session_id
        assert claims["email"] == user.email
        assert claims["role"] == user.role
        assert claims["exp"] - claims["iat"] == app.config["ACCESS_TOKEN_TTL_MS"] // 1000

    def test_each_login_is_a_separate_session(self, app, sessions, user, desktop):
        first = sessions.create_session(user, desktop)
        second = sessions.create_session(user, DeviceContext(UA_PHONE, "198.51.100.7"))
        assert first.session.session_id != second.session.session_id
        assert len(sessions.list_sessions(user.id)) == 2


class TestRefreshLookup:
    def test_refresh_token_is_single_use(self, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        found = sessions.find_session_by_refresh_token(issued.refresh_token, desktop)
        assert found is not None

        rotated = sessions.rotate_session(found, user, desktop)
        assert rotated is not None
        assert rotated.refresh_token != issued.refresh_token
        assert rotated.access_token != issued.access_token

        assert sessions.find_session_by_refresh_token(issued.refresh_token, desktop) is None
        again = sessions.find_session_by_refresh_token(rotated.refresh_token, desktop)
        assert again is not None
        assert again.session_id == issued.session.session_id

    def test_unknown_or_empty_token(self, sessions, user, desktop):
        sessions.create_session(user, desktop)
        assert sessions.find_session_by_refresh_token("nope", desktop) is None
        assert sessions.find_session_by_refresh_token("", desktop) is None
        assert sessions.find_session_by_refresh_token(None, desktop) is None

    def test_other_user_agent_is_rejected(self, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        phone = DeviceContext(UA_PHONE, desktop.ip_address)
        assert sessions.find_session_by_refresh_token(issued.refresh_token, phone) is None

    def test_other_network_is_rejected(self, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        elsewhere = DeviceContext(UA_DESKTOP, "198.51.100.7")
        assert sessions.find_session_by_refresh_token(issued.refresh_token, elsewhere) is None

    def test_same_subnet_and_case_insensitive_agent_is_accepted(self, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        nearby = DeviceContext(UA_DESKTOP.upper() + "  ", "203.0.113.99")
        assert sessions.find_session_by_refresh_token(issued.refresh_token, nearby) is not None

    def test_missing_caller_fingerprint_is_not_a_mismatch(self, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        assert sessions.find_session_by_refresh_token(issued.refresh_token, DeviceContext()) is not None


class TestRevocationAndExpiry:
    def test_revocation_is_terminal(self, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        sessions.revoke_session(issued.session)

        assert sessions.find_session_by_refresh_token(issued.refresh_token, desktop) is None
        assert sessions.find_live_session(issued.session.session_id) is None
        assert sessions.rotate_session(issued.session, user, desktop) is None

    def test_revoke_by_id_is_idempotent(self, app, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        sid = issued.session.session_id
        sessions.revoke_session(sid)
        first_revoked_at = _rows(app)[0].revoked_at
        assert first_revoked_at is not None

        sessions.revoke_session(sid)
        sessions.revoke_session(issued.session)
        sessions.revoke_session(None)
        sessions.revoke_session("no-such-session")
        assert _rows(app)[0].revoked_at == first_revoked_at

    def test_expired_session_is_dead(self, app, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        storage = app.extensions["storage"]
        issued.session.expires_at = utcnow() - timedelta(seconds=1)
        storage.new(issued.session)
        storage.save()

        assert sessions.find_session_by_refresh_token(issued.refresh_token, desktop) is None
        assert sessions.find_live_session(issued.session.session_id) is None
        assert sessions.rotate_session(issued.session, user, desktop) is None

    def test_revoke_all_for_user(self, sessions, user, desktop):
        a = sessions.create_session(user, desktop)
        b = sessions.create_session(user, desktop)
        assert sessions.revoke_all_for_user(user.id) == 2
        assert sessions.find_live_session(a.session.session_id) is None
        assert sessions.find_live_session(b.session.session_id) is None
        assert sessions.revoke_all_for_user(user.id) == 0


class TestRotation:
    def test_rotation_extends_expiry_and_updates_fingerprint(self, sessions, user):
        issued = sessions.create_session(user, DeviceContext())
        assert issued.session.user_agent_hash is None
        old_expiry = issued.session.expires_at

        rotated = sessions.rotate_session(issued.session, user, DeviceContext(UA_DESKTOP, "203.0.113.5"))
        fresh = sessions.find_live_session(issued.session.session_id)
        assert rotated is not None
        assert fresh.expires_at >= old_expiry
        assert fresh.user_agent_hash == hash_value(normalize_user_agent(UA_DESKTOP))
        assert fresh.ip_hash == hash_value("203.0.113")

    def test_losing_a_concurrent_rotation_fails_closed(self, app, sessions, user, desktop):
        issued = sessions.create_session(user, desktop)
        store = sessions.store
        stale_hash = issued.session.refresh_token_hash
        now = utcnow()

        assert store.rotate(issued.session, stale_hash, hash_value("winner"), now + timedelta(days=1), now)
        assert not store.rotate(issued.session, stale_hash, hash_value("loser"), now + timedelta(days=1), now)

        assert sessions.find_session_by_refresh_token("winner", desktop) is not None
        assert sessions.find_session_by_refresh_token("loser", desktop) is None
        assert sessions.find_session_by_refresh_token(issued.refresh_token, desktop) is None


class TestPurge:
    def test_purge_removes_expired_and_old_revoked(self, app, sessions, user, desktop):
        storage = app.extensions["storage"]
        live = sessions.create_session(user, desktop)
        expired = sessions.create_session(user, desktop)
        revoked = sessions.create_session(user, desktop)

        expired.session.expires_at = utcnow() - timedelta(minutes=1)
        storage.new(expired.session)
        storage.save()
        sessions.revoke_session(revoked.session)

        assert sessions.purge_expired(grace_ms=0) == 2
        remaining = [row.session_id for row in _rows(app)]
        assert remaining == [live.session.session_id]

    def test_grace_keeps_recently_revoked(self, app, sessions, user, desktop):
        revoked = sessions.create_session(user, desktop)
        sessions.revoke_session(revoked.session)
        assert sessions.purge_expired(grace_ms=60 * 60 * 1000) == 0
        assert len(_rows(app)) == 1


def test_cookie_options(app):
    session_opts = cookie_options(app.config, "session")
    refresh_opts = cookie_options(app.config, "refresh")
    assert session_opts["httponly"] is True
    assert session_opts["path"] == "/"
    assert session_opts["samesite"] == "None"
    assert session_opts["max_age"] == app.config["ACCESS_TOKEN_TTL_MS"] // 1000
    assert refresh_opts["max_age"] == app.config["REFRESH_TOKEN_TTL_MS"] // 1000
