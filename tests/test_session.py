from datetime import timedelta

import pytest

from identitydb.errors import (
    ExpiredSessionError,
    InvalidSessionError,
    ProgramError,
    SessionRenewalError,
)
from identitydb.lifetime import Lifetime
from identitydb import session as session_module
from identitydb.session import Session


@pytest.fixture
def sessions(identity):
    return identity.session


@pytest.fixture
def frozen_sessions(frozen_identity):
    return frozen_identity.session


def test_creates_anonymous_session(sessions):
    session = sessions.create()

    assert isinstance(session, Session)
    assert isinstance(session.id, int)
    assert session.user_id is None
    assert len(session.token) == 40
    assert len(session.renewal_token) == 40
    assert session.token != session.renewal_token
    assert session.created is not None


def test_tokens_are_unique(sessions):
    tokens = {sessions.create().token for _ in range(20)}
    assert len(tokens) == 20


def test_opens_session(sessions):
    created = sessions.create()
    opened = sessions.open(created.token)

    assert opened.id == created.id
    assert opened.token == created.token
    assert opened.user_id is None
    assert opened.renewal_token == created.renewal_token
    assert opened.expires == created.expires
    assert opened.renewable_until == created.renewable_until


def test_unknown_token_is_invalid(sessions):
    with pytest.raises(InvalidSessionError):
        sessions.open("0" * 40)


def test_renewal_token_does_not_open_session(sessions):
    session = sessions.create()
    with pytest.raises(InvalidSessionError):
        sessions.open(session.renewal_token)


@pytest.mark.parametrize(
    "lifetime",
    [Lifetime(seconds=-1), {"days": -1}, Lifetime(), {"years": -2, "days": 700}],
)
def test_non_positive_lifetime_is_expired_not_invalid(frozen_sessions, lifetime):
    session = frozen_sessions.create(lifetime, {"days": 2})

    with pytest.raises(ExpiredSessionError):
        frozen_sessions.open(session.token)


def test_get_ignores_expiration(sessions):
    session = sessions.create({"days": -1}, {"days": 1})

    fetched = sessions.get(session.id)
    assert fetched.token == session.token
    assert fetched.is_expired()

    with pytest.raises(InvalidSessionError):
        sessions.get(session.id + 1000)


def test_expiration_and_renewal_dates(frozen_sessions, clock):
    session = frozen_sessions.create(
        {
            "years": 1,
            "months": 3,
            "weeks": 2,
            "days": 5,
            "hours": 3,
            "minutes": 15,
            "seconds": 40,
            "milliseconds": 400,
        },
        {"days": 2},
    )
    expected_expires = clock.now + timedelta(milliseconds=41094940400)
    expected_renewable_until = expected_expires + timedelta(days=2)

    assert session.expires == expected_expires
    assert session.renewable_until == expected_renewable_until

    copy = frozen_sessions.open(session.token)
    assert copy.expires == expected_expires
    assert copy.renewable_until == expected_renewable_until


def test_default_lifetimes(frozen_sessions, clock):
    session = frozen_sessions.create()
    assert session.expires == clock.now + timedelta(days=30)
    assert session.renewable_until == clock.now + timedelta(days=120)


def test_never_expiring_session(frozen_sessions, clock):
    session = frozen_sessions.create(expires=False)
    assert session.expires is None
    assert session.renewable_until is None

    clock.advance(days=10000)
    assert frozen_sessions.open(session.token).id == session.id
    assert frozen_sessions.purge() == 0


def test_invalid_lifetime_is_a_program_error(sessions):
    with pytest.raises(ProgramError):
        sessions.create({"fortnights": 2})
    with pytest.raises(ProgramError):
        sessions.create("30 days")


@pytest.mark.parametrize(
    "lifetime, renewal_period",
    [
        ({"years": 10000}, None),
        ({"days": float("inf")}, None),
        ({"days": 1}, {"years": 1e12}),
    ],
)
def test_out_of_range_lifetime_is_a_program_error(frozen_sessions, lifetime, renewal_period):
    with pytest.raises(ProgramError):
        frozen_sessions.create(lifetime, renewal_period)

    session = frozen_sessions.create()
    with pytest.raises(ProgramError):
        session.update_lifetime(lifetime, renewal_period)
    with pytest.raises(ProgramError):
        frozen_sessions.renew(session.token, lifetime, session.renewal_token, renewal_period)

    # nothing was written
    assert frozen_sessions.open(session.token).expires == session.expires


# ----------------------------
# Expiration boundaries
# ----------------------------

def test_session_expires_at_its_timestamp(frozen_sessions, clock):
    session = frozen_sessions.create({"hours": 1}, {"hours": 1})

    clock.advance(hours=1, microseconds=-1)
    assert frozen_sessions.open(session.token).id == session.id

    clock.advance(microseconds=1)
    assert clock.now == session.expires
    with pytest.raises(ExpiredSessionError):
        frozen_sessions.open(session.token)


def test_renewal_window_closes_at_its_timestamp(frozen_sessions, clock):
    first = frozen_sessions.create({"hours": 1}, {"hours": 1})
    second = frozen_sessions.create({"hours": 1}, {"hours": 1})

    clock.advance(hours=2, microseconds=-1)
    renewed = frozen_sessions.renew(first.token, {"hours": 1}, first.renewal_token, {"hours": 1})
    assert renewed.id == first.id

    clock.advance(microseconds=1)
    assert clock.now == second.renewable_until
    with pytest.raises(SessionRenewalError):
        frozen_sessions.renew(second.token, {"hours": 1}, second.renewal_token, {"hours": 1})


def test_purge_removes_sessions_at_their_renewal_deadline(frozen_sessions, clock):
    session = frozen_sessions.create({"hours": 1}, {"hours": 1})

    clock.advance(hours=2, microseconds=-1)
    assert frozen_sessions.purge() == 0

    clock.advance(microseconds=1)
    assert frozen_sessions.purge() == 1
    with pytest.raises(InvalidSessionError):
        frozen_sessions.open(session.token)


# ----------------------------
# Renewal
# ----------------------------

def test_renews_expired_session(sessions):
    session = sessions.create({"days": -1}, {"days": 2})

    with pytest.raises(ExpiredSessionError):
        sessions.open(session.token)

    renewed = sessions.renew(session.token, {"days": 5}, session.renewal_token, {"days": 10})

    assert renewed.id == session.id
    assert renewed.token != session.token
    assert renewed.renewal_token != session.renewal_token
    assert renewed.renewable_until - renewed.expires == timedelta(days=10)

    assert sessions.open(renewed.token).id == session.id
    with pytest.raises(InvalidSessionError):
        sessions.open(session.token)


def test_renewal_sets_new_lifetime_from_now(frozen_sessions, clock):
    session = frozen_sessions.create({"days": 1}, {"days": 1})
    clock.advance(hours=36)

    renewed = frozen_sessions.renew(session.token, {"days": 5}, session.renewal_token, {"days": 10})
    assert renewed.expires == clock.now + timedelta(days=5)
    assert renewed.renewable_until == clock.now + timedelta(days=15)


def test_renewal_fails_after_window(sessions):
    session = sessions.create({"days": -10}, {"days": 5})

    with pytest.raises(SessionRenewalError):
        sessions.renew(session.token, {"days": 10}, session.renewal_token, {"days": 10})


def test_renewal_fails_for_unknown_pair(sessions):
    session = sessions.create()

    with pytest.raises(SessionRenewalError):
        sessions.renew("x", {"days": 10}, "y", {"days": 10})
    with pytest.raises(SessionRenewalError):
        sessions.renew(session.token, {"days": 10}, "0" * 40, {"days": 10})
    with pytest.raises(SessionRenewalError):
        sessions.renew(session.token, {"days": 10}, "", {"days": 10})


def test_renewal_pair_works_only_once(sessions):
    session = sessions.create()
    sessions.renew(session.token, {"days": 1}, session.renewal_token, {"days": 1})

    with pytest.raises(SessionRenewalError):
        sessions.renew(session.token, {"days": 1}, session.renewal_token, {"days": 1})


def test_renewal_racing_another_renewal_fails(sessions, monkeypatch):
    session = sessions.create()
    competitor = []
    generate = session_module.generate_token

    def generate_after_competing_renewal(*args, **kwargs):
        # The first new token is drawn after the pair was matched; renew it elsewhere now
        if not competitor:
            competitor.append(None)
            competitor[0] = sessions.renew(session.token, {"days": 1}, session.renewal_token, {"days": 1})
        return generate(*args, **kwargs)

    monkeypatch.setattr(session_module, "generate_token", generate_after_competing_renewal)

    with pytest.raises(SessionRenewalError, match="concurrently"):
        sessions.renew(session.token, {"days": 1}, session.renewal_token, {"days": 1})

    winner = competitor[0]
    assert sessions.open(winner.token).id == session.id
    with pytest.raises(InvalidSessionError):
        sessions.open(session.token)
    with pytest.raises(SessionRenewalError):
        sessions.renew(session.token, {"days": 1}, session.renewal_token, {"days": 1})


def test_renewal_keeps_user(identity):
    user = identity.user.create("renewal-user")
    session = identity.session.create()
    session.set_user_id(user.id)

    renewed = identity.session.renew(session.token, {"days": 1}, session.renewal_token, {"days": 1})
    assert renewed.user_id == user.id
    assert identity.session.open(renewed.token).user_id == user.id


# ----------------------------
# Purge
# ----------------------------

def test_purges_dead_sessions(sessions):
    survivor1 = sessions.create({"days": 5}, {"days": 10})
    survivor2 = sessions.create({"days": -3}, {"days": 5})
    purged1 = sessions.create({"days": -5}, {"days": 4})
    purged2 = sessions.create({"days": -10}, {"days": 8})

    sessions.open(survivor1.token)
    for session in (survivor2, purged1, purged2):
        with pytest.raises(ExpiredSessionError):
            sessions.open(session.token)

    assert sessions.purge() == 2

    sessions.open(survivor1.token)
    with pytest.raises(ExpiredSessionError):
        sessions.open(survivor2.token)
    for session in (purged1, purged2):
        with pytest.raises(InvalidSessionError):
            sessions.open(session.token)

    assert sessions.purge() == 0


# ----------------------------
# Handles
# ----------------------------

def test_sets_and_discards_user_id(identity):
    user = identity.user.create("session-test-user")
    session = identity.session.create()

    session.set_user_id(user.id)
    assert session.user_id == user.id
    assert identity.session.open(session.token).user_id == user.id

    session.discard_user_id()
    assert session.user_id is None
    assert identity.session.open(session.token).user_id is None


def test_removing_user_keeps_session(identity):
    user = identity.user.create("doomed-user")
    session = identity.session.create()
    session.set_user_id(user.id)

    identity.user.remove("doomed-user")

    assert identity.session.open(session.token).user_id is None


def test_update_lifetime_restarts_from_now(frozen_sessions, clock):
    session = frozen_sessions.create({"days": 1}, {"days": 2})

    clock.advance(hours=1)
    session.update_lifetime({"days": 5}, {"days": 15})
    session.update_lifetime({"days": 5}, {"days": 15})

    assert session.expires == clock.now + timedelta(days=5)
    assert session.renewable_until == clock.now + timedelta(days=20)

    copy = frozen_sessions.open(session.token)
    assert copy.expires == session.expires
    assert copy.renewable_until == session.renewable_until


def test_handles_are_snapshots(sessions):
    session = sessions.create({"days": 1}, {"days": 2})
    first = sessions.open(session.token)
    second = sessions.open(session.token)

    first.update_lifetime({"days": 5}, {"days": 15})

    assert second.expires == session.expires
    assert second.expires != first.expires
    assert sessions.open(session.token).expires == first.expires


def test_can_revive_expired_session_with_update_lifetime(sessions):
    session = sessions.create({"days": -1}, {"days": 1})
    session.update_lifetime({"days": 1})
    assert sessions.open(session.token).id == session.id


def test_destroys_session(sessions):
    session = sessions.create()
    session.destroy()

    with pytest.raises(InvalidSessionError):
        sessions.open(session.token)

    with pytest.raises(ProgramError):
        session.destroy()
    with pytest.raises(ProgramError):
        session.update_lifetime({"days": 1})


def test_destroy_through_second_handle(sessions):
    session = sessions.create()
    other = sessions.open(session.token)

    other.destroy()
    # the first handle does not know, deleting again is harmless
    session.destroy()
