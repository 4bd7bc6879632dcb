"""
Session broker tests: lifecycle operations, event routing, side effects
and queries.
"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from livechat.services import PushNotifier, SessionBroker
from livechat.services.broker import NOT_RATED, normalize_rating, transcript_line
from livechat.session import (
    InvalidInputError,
    InvalidRoleError,
    SessionAlreadyClaimedError,
    SessionNotFoundError,
    SessionStatus,
    SessionTimedOutError,
)
from livechat.streaming import ADMIN_KEY

from .conftest import drain, of_type


async def _request(broker, t0, **kwargs):
    kwargs.setdefault("visitor_name", "Dana")
    kwargs.setdefault("visitor_email", "dana@example.com")
    kwargs.setdefault("requested_role", "sales")
    result = await broker.request_session(now=t0, **kwargs)
    return result["sessionId"]


async def _time_out(store, session_id):
    def _expire(session):
        session.status = SessionStatus.TIMED_OUT
    await store.update(session_id, _expire)


# ===========================
# Request
# ===========================

class TestRequestSession:

    @pytest.mark.asyncio
    async def test_creates_waiting_session(self, broker, store, t0):
        result = await broker.request_session("Dana", "dana@example.com", "Sales", now=t0)

        assert result["timeout"] == 120
        assert result["message"] == "Live agent session created. Waiting for agent assignment..."

        session = await store.get(result["sessionId"])
        assert session.status == SessionStatus.WAITING
        assert session.requested_role == "sales"
        assert session.timeout_at == t0 + timedelta(seconds=120)

    @pytest.mark.asyncio
    async def test_defaults(self, broker, store, t0):
        result = await broker.request_session(now=t0)

        session = await store.get(result["sessionId"])
        assert session.visitor_name == "Guest"
        assert session.visitor_email == ""
        assert session.requested_role == "support"

    @pytest.mark.asyncio
    async def test_literal_null_name_becomes_guest(self, broker, store, t0):
        session_id = await _request(broker, t0, visitor_name="null")
        assert (await store.get(session_id)).visitor_name == "Guest"

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, broker, t0):
        ids = {await _request(broker, t0) for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.asyncio
    async def test_initial_messages_kept(self, broker, store, t0):
        session_id = await _request(
            broker, t0,
            initial_messages=[{"from": "user", "text": "Do you ship abroad?"}],
        )

        session = await store.get(session_id)
        assert [m.text for m in session.messages] == ["Do you ship abroad?"]

    @pytest.mark.asyncio
    async def test_invalid_initial_messages(self, broker, store, t0):
        with pytest.raises(InvalidInputError):
            await _request(broker, t0, initial_messages=["not a message"])

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_admins_notified(self, broker, broadcaster, t0):
        admin = broadcaster.open(ADMIN_KEY)

        session_id = await _request(broker, t0)

        [event] = await drain(admin)
        assert event["type"] == "new_session"
        assert event["sessionId"] == session_id
        assert event["userName"] == "Dana"
        assert event["requestedRole"] == "sales"
        assert event["timeoutIn"] == 120

    @pytest.mark.asyncio
    async def test_conversation_recorded(self, broker, outbox, mock_recorder, t0):
        session_id = await _request(broker, t0)
        await outbox.join()

        mock_recorder.create_conversation.assert_awaited_once_with(
            session_id, "Dana", "dana@example.com"
        )

    @pytest.mark.asyncio
    async def test_recorder_failure_does_not_fail_request(self, broker, outbox, mock_recorder, store, t0):
        mock_recorder.create_conversation.side_effect = RuntimeError("database down")

        session_id = await _request(broker, t0)
        await outbox.join()

        assert await store.exists(session_id)
        assert outbox.stats.failed == 1

    @pytest.mark.asyncio
    async def test_push_notification_queued(self, store, broadcaster, outbox, test_settings, mock_recorder, t0):
        notifier = AsyncMock(spec=PushNotifier)
        broker = SessionBroker(
            store, broadcaster, outbox, test_settings,
            recorder=mock_recorder, push_notifier=notifier,
        )

        session_id = await _request(broker, t0)
        await outbox.join()

        notifier.notify_new_session.assert_awaited_once_with(session_id, "Dana", "sales")

    @pytest.mark.asyncio
    async def test_runs_without_recorder(self, store, broadcaster, outbox, test_settings, t0):
        broker = SessionBroker(store, broadcaster, outbox, test_settings)

        session_id = await _request(broker, t0)

        assert await store.exists(session_id)
        assert outbox.stats.submitted == 0


# ===========================
# Claim
# ===========================

class TestClaimSession:

    @pytest.mark.asyncio
    async def test_claim(self, broker, store, t0):
        session_id = await _request(broker, t0)
        later = t0 + timedelta(seconds=30)

        claimed = await broker.claim_session(session_id, "Ann", "Sales", now=later)

        assert claimed.status == SessionStatus.CLAIMED
        assert claimed.agent_name == "Ann"
        assert claimed.assigned_role == "sales"
        assert claimed.claimed_at == later

        stored = await store.get(session_id)
        welcome = stored.messages[-1]
        assert welcome.sender == "agent"
        assert welcome.name == "Ann"
        assert welcome.text == "Hello, I'm Ann from the sales team. How can I help you today?"

    @pytest.mark.asyncio
    async def test_exactly_one_concurrent_claim_wins(self, broker, store, t0):
        session_id = await _request(broker, t0)
        agents = [f"agent-{i}" for i in range(10)]

        results = await asyncio.gather(
            *(broker.claim_session(session_id, name, "sales") for name in agents),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]

        assert len(winners) == 1
        assert all(isinstance(e, SessionAlreadyClaimedError) for e in losers)
        assert (await store.get(session_id)).agent_name == winners[0].agent_name

    @pytest.mark.asyncio
    async def test_already_claimed(self, broker, t0):
        session_id = await _request(broker, t0)
        await broker.claim_session(session_id, "Ann", "sales")

        with pytest.raises(SessionAlreadyClaimedError):
            await broker.claim_session(session_id, "Bob", "sales")

    @pytest.mark.asyncio
    async def test_timed_out_session_cannot_be_claimed(self, broker, store, t0):
        session_id = await _request(broker, t0)
        await _time_out(store, session_id)

        with pytest.raises(SessionTimedOutError):
            await broker.claim_session(session_id, "Ann", "sales")

        assert (await store.get(session_id)).agent_name is None

    @pytest.mark.asyncio
    async def test_unknown_session(self, broker):
        with pytest.raises(SessionNotFoundError):
            await broker.claim_session("missing", "Ann", "sales")

    @pytest.mark.asyncio
    async def test_missing_agent_name(self, broker, t0):
        session_id = await _request(broker, t0)

        with pytest.raises(InvalidInputError):
            await broker.claim_session(session_id, "", "sales")

    @pytest.mark.asyncio
    async def test_events(self, broker, broadcaster, t0):
        session_id = await _request(broker, t0)
        visitor = await broker.open_visitor_stream(session_id, now=t0)
        admin = broadcaster.open(ADMIN_KEY)

        await broker.claim_session(session_id, "Ann", "sales", now=t0)

        visitor_events = await drain(visitor)
        assert [e.get("type") for e in visitor_events] == ["connected", "agent_connected", None]
        assert visitor_events[1]["message"] == "Connected to Ann from sales team"
        assert visitor_events[2]["from"] == "agent"
        assert visitor_events[2]["name"] == "Ann"

        [assigned] = await drain(admin)
        assert assigned["type"] == "assigned"
        assert assigned["agentName"] == "Ann"
        assert assigned["agentRole"] == "sales"

    @pytest.mark.asyncio
    async def test_claim_recorded(self, broker, outbox, mock_recorder, t0):
        session_id = await _request(broker, t0)
        await broker.claim_session(session_id, "Ann", "sales")
        await outbox.join()

        mock_recorder.record_claim.assert_awaited_once_with(session_id, "Ann", "sales")


# ===========================
# Messages
# ===========================

class TestSendMessage:

    @pytest.mark.asyncio
    async def test_visitor_message_goes_to_admins(self, broker, broadcaster, t0):
        session_id = await _request(broker, t0)
        visitor = await broker.open_visitor_stream(session_id, now=t0)
        admin = broadcaster.open(ADMIN_KEY)

        await broker.send_message(session_id, "Hi there", now=t0)

        [event] = await drain(admin)
        assert event["type"] == "message"
        assert event["sessionId"] == session_id
        assert event["from"] == "user"
        assert event["text"] == "Hi there"
        assert event["userName"] == "Dana"

        assert of_type(await drain(visitor), "message") == []

    @pytest.mark.asyncio
    async def test_agent_message_goes_to_visitor(self, broker, broadcaster, t0):
        session_id = await _request(broker, t0)
        await broker.claim_session(session_id, "Ann", "sales", now=t0)
        visitor = await broker.open_visitor_stream(session_id, now=t0)
        admin = broadcaster.open(ADMIN_KEY)

        await broker.admin_send(session_id, "On it", now=t0)

        events = await drain(visitor)
        assert events[-1]["from"] == "agent"
        assert events[-1]["name"] == "Ann"
        assert events[-1]["text"] == "On it"
        assert await drain(admin) == []

    @pytest.mark.asyncio
    async def test_messages_keep_submission_order(self, broker, store, broadcaster, t0):
        session_id = await _request(broker, t0)
        admin = broadcaster.open(ADMIN_KEY)

        for i in range(10):
            await broker.send_message(session_id, f"m{i}")

        texts = [m.text for m in (await store.get(session_id)).messages]
        assert texts == [f"m{i}" for i in range(10)]
        assert [e["text"] for e in await drain(admin)] == texts

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, broker, t0):
        session_id = await _request(broker, t0)

        with pytest.raises(InvalidInputError):
            await broker.send_message(session_id, "   ")

    @pytest.mark.asyncio
    async def test_unknown_session(self, broker):
        with pytest.raises(SessionNotFoundError):
            await broker.send_message("missing", "hello")

    @pytest.mark.asyncio
    async def test_timed_out_session(self, broker, store, t0):
        session_id = await _request(broker, t0)
        await _time_out(store, session_id)

        with pytest.raises(SessionTimedOutError):
            await broker.send_message(session_id, "anyone?")

    @pytest.mark.asyncio
    async def test_transcript_recorded_in_order(self, broker, outbox, mock_recorder, t0):
        session_id = await _request(broker, t0)
        await broker.send_message(session_id, "first", now=t0)
        await broker.send_message(session_id, "second", now=t0)
        await outbox.join()

        lines = [c.args[1] for c in mock_recorder.append_transcript.await_args_list]
        assert lines == [
            transcript_line("Dana", "first", t0),
            transcript_line("Dana", "second", t0),
        ]
        actions = [c.args[1] for c in mock_recorder.log_event.await_args_list]
        assert actions == ["message", "message"]


# ===========================
# Transfer
# ===========================

class TestTransferSession:

    @pytest.mark.asyncio
    async def test_transfer_returns_to_waiting(self, broker, store, t0):
        session_id = await _request(broker, t0)
        await broker.claim_session(session_id, "Ann", "sales", now=t0)

        message = await broker.transfer_session(session_id, "Support", "Ann", now=t0 + timedelta(seconds=60))

        assert message == "Session transferred from sales to support"
        session = await store.get(session_id)
        assert session.status == SessionStatus.WAITING
        assert session.requested_role == "support"
        assert session.agent_name is None
        assert session.assigned_role is None
        assert session.claimed_at is None

    @pytest.mark.asyncio
    async def test_deadline_kept_by_default(self, broker, store, t0):
        session_id = await _request(broker, t0)

        await broker.transfer_session(session_id, "support", now=t0 + timedelta(seconds=60))

        assert (await store.get(session_id)).timeout_at == t0 + timedelta(seconds=120)

    @pytest.mark.asyncio
    async def test_deadline_restarted_when_configured(self, broker, store, settings_override, t0):
        settings_override({"transfer_resets_claim_timeout": True})
        session_id = await _request(broker, t0)
        later = t0 + timedelta(seconds=60)

        await broker.transfer_session(session_id, "support", now=later)

        assert (await store.get(session_id)).timeout_at == later + timedelta(seconds=120)

    @pytest.mark.asyncio
    async def test_transferred_session_can_be_claimed_again(self, broker, t0):
        session_id = await _request(broker, t0)
        await broker.claim_session(session_id, "Ann", "sales")
        await broker.transfer_session(session_id, "support", "Ann")

        claimed = await broker.claim_session(session_id, "Bob", "support")

        assert claimed.agent_name == "Bob"

    @pytest.mark.asyncio
    async def test_invalid_role(self, broker, store, t0):
        session_id = await _request(broker, t0)

        with pytest.raises(InvalidRoleError):
            await broker.transfer_session(session_id, "janitor")

        assert (await store.get(session_id)).requested_role == "sales"

    @pytest.mark.asyncio
    async def test_unknown_session_checked_before_role(self, broker):
        with pytest.raises(SessionNotFoundError):
            await broker.transfer_session("missing", "janitor")

    @pytest.mark.asyncio
    async def test_timed_out_session(self, broker, store, t0):
        session_id = await _request(broker, t0)
        await _time_out(store, session_id)

        with pytest.raises(SessionTimedOutError):
            await broker.transfer_session(session_id, "support")

    @pytest.mark.asyncio
    async def test_admins_notified(self, broker, broadcaster, t0):
        session_id = await _request(broker, t0)
        admin = broadcaster.open(ADMIN_KEY)

        await broker.transfer_session(session_id, "support", "Ann")

        [event] = await drain(admin)
        assert event["type"] == "session_transferred"
        assert event["fromRole"] == "sales"
        assert event["toRole"] == "support"
        assert event["transferredBy"] == "Ann"


# ===========================
# Close / End / Rate
# ===========================

class TestCloseAndEnd:

    @pytest.mark.asyncio
    async def test_close(self, broker, store, broadcaster, outbox, mock_recorder, t0):
        session_id = await _request(broker, t0)
        await broker.claim_session(session_id, "Ann", "sales")
        visitor = await broker.open_visitor_stream(session_id)
        admin = broadcaster.open(ADMIN_KEY)

        await broker.close_session(session_id)

        assert not await store.exists(session_id)
        assert [e async for e in visitor][-1]["type"] == "session_closed"
        assert visitor.closed

        [ended] = await drain(admin)
        assert ended["type"] == "session_ended"
        assert ended["endedBy"] == "Ann"

        await outbox.join()
        mock_recorder.record_end.assert_awaited_once_with(session_id, "closed")

    @pytest.mark.asyncio
    async def test_close_unknown(self, broker):
        with pytest.raises(SessionNotFoundError):
            await broker.close_session("missing")

    @pytest.mark.asyncio
    async def test_end(self, broker, store, broadcaster, t0):
        session_id = await _request(broker, t0)
        visitor = await broker.open_visitor_stream(session_id)
        admin = broadcaster.open(ADMIN_KEY)

        session = await broker.end_session(session_id, "Ann", "sales", "Resolved")

        assert session.visitor_name == "Dana"
        assert not await store.exists(session_id)

        last = [e async for e in visitor][-1]
        assert last["type"] == "agent_ended"
        assert last["message"] == "👋 Ann (sales) has ended the chat. Thank you for contacting us!"
        assert last["reason"] == "Resolved"

        [ended] = await drain(admin)
        assert ended["endedBy"] == "Ann"
        assert ended["reason"] == "Resolved"

    @pytest.mark.asyncio
    async def test_end_defaults(self, broker, broadcaster, t0):
        session_id = await _request(broker, t0)
        visitor = await broker.open_visitor_stream(session_id)

        await broker.end_session(session_id, agent_name=None, agent_role=None, reason=None)

        last = [e async for e in visitor][-1]
        assert last["message"].startswith("👋 Admin (support)")
        assert last["reason"] == "Chat ended by agent"

    @pytest.mark.asyncio
    async def test_end_uses_configured_default_role(self, broker, settings_override, t0):
        settings_override({"default_role": "sales"})
        session_id = await _request(broker, t0)
        visitor = await broker.open_visitor_stream(session_id)

        await broker.end_session(session_id)

        last = [e async for e in visitor][-1]
        assert last["message"].startswith("👋 Admin (sales)")

    @pytest.mark.asyncio
    async def test_end_unknown(self, broker):
        with pytest.raises(SessionNotFoundError):
            await broker.end_session("missing")

    @pytest.mark.asyncio
    async def test_operations_after_close(self, broker, t0):
        session_id = await _request(broker, t0)
        await broker.close_session(session_id)

        with pytest.raises(SessionNotFoundError):
            await broker.send_message(session_id, "hello?")
        with pytest.raises(SessionNotFoundError):
            await broker.claim_session(session_id, "Ann", "sales")


class TestRating:

    @pytest.mark.parametrize("value,expected", [
        ("Good", "Good"),
        ("Needs Improvement", "Needs Improvement"),
        ("Excellent", NOT_RATED),
        (None, NOT_RATED),
    ])
    def test_normalize_rating(self, value, expected):
        assert normalize_rating(value) == expected

    @pytest.mark.asyncio
    async def test_rating_after_close(self, broker, outbox, mock_recorder, t0):
        session_id = await _request(broker, t0)
        await broker.close_session(session_id)

        result = await broker.rate_session(session_id, "Good", "bogus")
        await outbox.join()

        assert result == {"rating": "Good", "ratingType": NOT_RATED}
        mock_recorder.record_rating.assert_awaited_once_with(session_id, "Good", NOT_RATED)


# ===========================
# Queries
# ===========================

class TestQueries:

    @pytest.mark.asyncio
    async def test_get_session(self, broker, t0):
        session_id = await _request(broker, t0)

        data = await broker.get_session(session_id, now=t0 + timedelta(seconds=100))

        assert data["id"] == session_id
        assert data["timeRemaining"] == 20
        assert data["isUrgent"] is True
        assert data["minutesWaiting"] == 1

    @pytest.mark.asyncio
    async def test_get_session_unknown(self, broker):
        with pytest.raises(SessionNotFoundError):
            await broker.get_session("missing")

    @pytest.mark.asyncio
    async def test_list_sessions_filters(self, broker, store, t0):
        sales = await _request(broker, t0, requested_role="sales")
        support = await _request(broker, t0 + timedelta(seconds=1), requested_role="support")
        claimed = await _request(broker, t0 + timedelta(seconds=2), requested_role="support")
        timed_out = await _request(broker, t0 + timedelta(seconds=3), requested_role="support")
        await broker.claim_session(claimed, "Ann", "support")
        await _time_out(store, timed_out)

        def ids(rows):
            return [r["id"] for r in rows]

        assert ids(await broker.list_sessions()) == [sales, support, claimed]
        assert ids(await broker.list_sessions(role="all")) == [sales, support, claimed]
        assert ids(await broker.list_sessions(role="support")) == [support, claimed]
        assert ids(await broker.list_sessions(role="support", include_timed_out=True)) == [
            support, claimed, timed_out
        ]
        assert ids(await broker.list_sessions(waiting_only=True)) == [sales, support]

    @pytest.mark.asyncio
    async def test_history_and_messages(self, broker, t0):
        session_id = await _request(broker, t0)
        await broker.send_message(session_id, "hello")

        history = await broker.get_history(session_id)
        messages = await broker.get_messages(session_id)

        assert [m["text"] for m in history] == ["hello"]
        assert messages["success"] is True
        assert messages["status"] == "waiting"
        assert messages["messages"] == history

    @pytest.mark.asyncio
    async def test_agent_name_from_memory(self, broker, mock_recorder, t0):
        session_id = await _request(broker, t0)
        await broker.claim_session(session_id, "Ann", "sales")

        assert await broker.get_agent_name(session_id) == "Ann"
        mock_recorder.get_agent_name.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_agent_name_from_recorder(self, broker, mock_recorder):
        mock_recorder.get_agent_name.return_value = "Ann"
        assert await broker.get_agent_name("closed-earlier") == "Ann"

    @pytest.mark.asyncio
    async def test_agent_name_recorder_failure(self, broker, mock_recorder):
        mock_recorder.get_agent_name.side_effect = RuntimeError("database down")
        assert await broker.get_agent_name("closed-earlier") is None

    @pytest.mark.asyncio
    async def test_admin_sessions(self, broker, t0):
        session_id = await _request(broker, t0)

        [row] = await broker.admin_sessions(now=t0 + timedelta(seconds=2.5))

        assert row["id"] == session_id
        assert row["waitingTime"] == 2500

    @pytest.mark.asyncio
    async def test_stats(self, broker, broadcaster, t0):
        first = await _request(broker, t0, requested_role="sales")
        second = await _request(broker, t0, requested_role="support")
        await _request(broker, t0, requested_role="support")
        await broker.claim_session(first, "Ann", "sales", now=t0 + timedelta(seconds=10))
        await broker.claim_session(second, "Bob", "support", now=t0 + timedelta(seconds=31))
        broadcaster.open(ADMIN_KEY)

        stats = await broker.get_stats()

        assert stats["total"] == 3
        assert stats["byRole"]["support"] == 2
        assert stats["byRole"]["account"] == 0
        assert stats["waiting"] == 1
        assert stats["active"] == 2
        assert stats["adminConnections"] == 1
        assert stats["averageWaitTime"] == 20

    @pytest.mark.asyncio
    async def test_health(self, broker, store, t0):
        session_id = await _request(broker, t0)
        await _request(broker, t0)
        await _time_out(store, session_id)

        health = await broker.health()

        assert health["status"] == "ok"
        assert health["totalSessions"] == 2
        assert health["waitingSessions"] == 1
        assert health["timedOutSessions"] == 1
        assert health["sessionTimeout"] == 120
        assert "submitted" in health["outbox"]

    @pytest.mark.asyncio
    async def test_connection_test(self, broker, t0):
        await _request(broker, t0)

        result = await broker.connection_test()

        assert result["status"] == "ok"
        assert result["sessions"] == 1
        assert result["environment"] == "testing"


# ===========================
# Streams
# ===========================

class TestStreams:

    @pytest.mark.asyncio
    async def test_visitor_stream_connected_event(self, broker, t0):
        session_id = await _request(broker, t0)

        stream = await broker.open_visitor_stream(session_id, now=t0 + timedelta(seconds=20))

        [connected] = await drain(stream)
        assert connected == {
            "type": "connected",
            "sessionId": session_id,
            "timeRemaining": 100,
            "status": "waiting",
        }

    @pytest.mark.asyncio
    async def test_visitor_stream_unknown_session(self, broker):
        stream = await broker.open_visitor_stream("gone")

        assert await drain(stream) == [{"type": "connected", "sessionId": "gone"}]

    @pytest.mark.asyncio
    async def test_visitor_stream_requires_id(self, broker):
        with pytest.raises(InvalidInputError):
            await broker.open_visitor_stream("")

    @pytest.mark.asyncio
    async def test_admin_stream_initial_data(self, broker, store, t0):
        waiting = await _request(broker, t0)
        timed_out = await _request(broker, t0)
        await _time_out(store, timed_out)

        stream = await broker.open_admin_stream()

        connected = await stream.get(timeout=1)
        assert connected["type"] == "admin_connected"

        initial = await stream.get(timeout=1)
        assert initial["type"] == "initial_data"
        assert initial["clientId"] == connected["clientId"] == stream.client_id
        assert initial["waitingSessions"] == 1
        assert initial["timedOutSessions"] == 1
        assert initial["totalSessions"] == 2
        assert [s["id"] for s in initial["sessions"]] == [waiting]

    @pytest.mark.asyncio
    async def test_heartbeat_reports_status(self, broker, t0):
        session_id = await _request(broker, t0)
        stream = await broker.open_visitor_stream(session_id)

        assert await broker.heartbeat() == 1

        beat = (await drain(stream))[-1]
        assert beat["type"] == "heartbeat"
        assert beat["sessionStatus"] == "waiting"

    @pytest.mark.asyncio
    async def test_session_status_map(self, broker, t0):
        waiting = await _request(broker, t0)
        claimed = await _request(broker, t0)
        await broker.claim_session(claimed, "Ann", "support", now=t0)

        assert await broker.session_status_map() == {waiting: "waiting", claimed: "claimed"}

    @pytest.mark.asyncio
    async def test_shutdown_closes_streams(self, broker, t0):
        session_id = await _request(broker, t0)
        visitor = await broker.open_visitor_stream(session_id)
        admin = await broker.open_admin_stream()

        await broker.shutdown()

        assert visitor.closed
        assert admin.closed
        assert broker.broadcaster.get_stats()["visitor_streams"] == 0


def test_transcript_line_format(t0):
    line = transcript_line("Dana", "hello", t0)

    assert line.startswith("[Dana - ")
    assert line.endswith("] hello\n")
    assert ("AM" in line) or ("PM" in line)
