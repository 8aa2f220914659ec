"""
Tests for transport-level session resumption.

Tests cover:
- Missed events are buffered and redelivered in order
- Resumption refused for another identity, unknown sid, expiry, overflow
- A session can only be resumed once
"""

import pytest

from chatrelay.resumption import SessionResumption
from chatrelay.sessions import Connection


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resumption(clock):
    return SessionResumption(window_seconds=120, buffer_size=3, clock=clock)


def event(n):
    return {"event": "message", "data": {"id": str(n)}}


class TestSessionResumption:

    def test_missed_events_redelivered_in_order(self, resumption):
        alice = Connection("alice")
        resumption.suspend(alice)
        resumption.record(event(1))
        resumption.record(event(2))

        assert resumption.resume(alice.id, "alice") == [event(1), event(2)]

    def test_pending_events_come_first(self, resumption):
        alice = Connection("alice")
        resumption.suspend(alice, pending=[event(1)])
        resumption.record(event(2))

        assert resumption.resume(alice.id, "alice") == [event(1), event(2)]

    def test_nothing_missed(self, resumption):
        alice = Connection("alice")
        resumption.suspend(alice)

        assert resumption.resume(alice.id, "alice") == []

    def test_resume_only_once(self, resumption):
        alice = Connection("alice")
        resumption.suspend(alice)

        assert resumption.resume(alice.id, "alice") == []
        assert resumption.resume(alice.id, "alice") is None

    def test_unknown_sid(self, resumption):
        assert resumption.resume("nope", "alice") is None

    def test_other_identity_refused_and_session_kept(self, resumption):
        alice = Connection("alice")
        resumption.suspend(alice)

        assert resumption.resume(alice.id, "mallory") is None
        assert resumption.resume(alice.id, "alice") == []

    def test_expired_session(self, resumption, clock):
        alice = Connection("alice")
        resumption.suspend(alice)
        clock.now += 121

        assert resumption.resume(alice.id, "alice") is None
        assert len(resumption) == 0

    def test_within_window(self, resumption, clock):
        alice = Connection("alice")
        resumption.suspend(alice)
        clock.now += 119

        assert resumption.resume(alice.id, "alice") == []

    def test_overflow_forces_fresh_session(self, resumption):
        alice = Connection("alice")
        resumption.suspend(alice)
        for n in range(4):
            resumption.record(event(n))

        assert resumption.resume(alice.id, "alice") is None

    def test_zero_window_disables_resumption(self, clock):
        resumption = SessionResumption(window_seconds=0, buffer_size=3, clock=clock)
        alice = Connection("alice")
        resumption.suspend(alice)

        assert resumption.resume(alice.id, "alice") is None
