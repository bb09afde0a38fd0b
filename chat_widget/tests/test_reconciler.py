"""Tests for the client reconciler."""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from chat_widget.reconciler import ClientReconciler, PendingMessage


@pytest.fixture
def chat_id() -> UUID:
    return uuid4()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


class TestDeduplication:
    """A message id renders once, however it arrives."""

    def test_same_message_from_every_source(self, reconciler: ClientReconciler, make_message, chat_id) -> None:
        """Test history, bus echo and redelivery collapse to one entry."""
        message = make_message(chat_id)

        assert reconciler.load_history([message]) == 1
        assert reconciler.apply(message) is False
        assert reconciler.apply(message.model_copy()) is False

        assert reconciler.messages == [message]

    def test_history_reload_keeps_live_events(self, reconciler: ClientReconciler, make_message, chat_id) -> None:
        """Test a history load merges with events that arrived meanwhile."""
        older = make_message(chat_id, "older", offset=0)
        live = make_message(chat_id, "live", offset=5)
        reconciler.apply(live)

        added = reconciler.load_history([older])

        assert added == 1
        assert [m.message for m in reconciler.messages] == ["older", "live"]

    def test_reload_after_resubscribe_adds_only_missed(
        self, reconciler: ClientReconciler, make_message, chat_id
    ) -> None:
        """Test a full reload after a gap adds exactly the missed messages."""
        history = [make_message(chat_id, str(i), offset=i) for i in range(4)]
        reconciler.load_history(history[:2])

        assert reconciler.load_history(history) == 2
        assert reconciler.messages == history


class TestOrdering:
    """The view follows (created_at, id), not arrival order."""

    def test_out_of_order_arrival(self, reconciler: ClientReconciler, make_message, chat_id) -> None:
        """Test later-created messages arriving first still render last."""
        first = make_message(chat_id, "first", offset=1)
        second = make_message(chat_id, "second", offset=2)
        third = make_message(chat_id, "third", offset=3)

        for message in (third, first, second):
            reconciler.apply(message)

        assert [m.message for m in reconciler.messages] == ["first", "second", "third"]

    def test_same_timestamp_ordered_by_id(self, reconciler: ClientReconciler, make_message, chat_id) -> None:
        """Test equal created_at is broken by id."""
        high = make_message(chat_id, "b", message_id=UUID(int=2))
        low = make_message(chat_id, "a", message_id=UUID(int=1))

        reconciler.apply(high)
        reconciler.apply(low)

        assert [m.id for m in reconciler.messages] == [low.id, high.id]


class TestOptimisticSends:
    """Placeholders shown before the store confirms."""

    def test_placeholder_visible_immediately(self, reconciler: ClientReconciler, chat_id, user_id) -> None:
        """Test a local send shows up as pending right away."""
        pending = reconciler.add_optimistic(chat_id, user_id, "Hello")

        assert isinstance(pending, PendingMessage)
        assert pending.key.startswith("local-")
        assert reconciler.view() == [pending]
        assert len(reconciler) == 1

    def test_confirm_replaces_placeholder(self, reconciler: ClientReconciler, make_message, chat_id, user_id) -> None:
        """Test the store's answer replaces the placeholder."""
        pending = reconciler.add_optimistic(chat_id, user_id, "Hello")
        confirmed = make_message(chat_id, "Hello", sender_id=user_id, created_at=datetime.now(timezone.utc))

        assert reconciler.confirm(pending.key, confirmed) is True

        assert reconciler.view() == [confirmed]
        assert reconciler.pending == []

    def test_echo_before_store_answer(self, reconciler: ClientReconciler, make_message, chat_id, user_id) -> None:
        """Test the bus echo arriving before the send returns leaves one 'Hello'."""
        pending = reconciler.add_optimistic(chat_id, user_id, "Hello")
        confirmed = make_message(chat_id, "Hello", sender_id=user_id, created_at=datetime.now(timezone.utc))

        reconciler.apply(confirmed)
        reconciler.confirm(pending.key, confirmed)

        assert [e.message for e in reconciler.view()] == ["Hello"]
        assert reconciler.pending == []

    def test_store_answer_before_echo(self, reconciler: ClientReconciler, make_message, chat_id, user_id) -> None:
        """Test the echo after the send returned adds nothing."""
        pending = reconciler.add_optimistic(chat_id, user_id, "Hello")
        confirmed = make_message(chat_id, "Hello", sender_id=user_id, created_at=datetime.now(timezone.utc))

        reconciler.confirm(pending.key, confirmed)

        assert reconciler.apply(confirmed) is False
        assert reconciler.view() == [confirmed]

    def test_identical_texts_sent_twice(self, reconciler: ClientReconciler, make_message, chat_id, user_id) -> None:
        """Test two sends of the same text end as two messages."""
        now = datetime.now(timezone.utc)
        first = reconciler.add_optimistic(chat_id, user_id, "ok")
        second = reconciler.add_optimistic(chat_id, user_id, "ok")
        echo_1 = make_message(chat_id, "ok", sender_id=user_id, created_at=now)
        echo_2 = make_message(chat_id, "ok", sender_id=user_id, created_at=now + timedelta(milliseconds=5))

        # One echo arrives early, consuming the oldest look-alike placeholder
        reconciler.apply(echo_1)
        assert len(reconciler.pending) == 1

        reconciler.confirm(first.key, echo_1)
        reconciler.confirm(second.key, echo_2)

        assert [e.id for e in reconciler.view()] == [echo_1.id, echo_2.id]
        assert reconciler.pending == []

    def test_other_senders_do_not_consume_placeholder(
        self, reconciler: ClientReconciler, make_message, chat_id, user_id
    ) -> None:
        """Test an agent message with the same text leaves the placeholder."""
        reconciler.add_optimistic(chat_id, user_id, "Hello")

        reconciler.apply(make_message(chat_id, "Hello", created_at=datetime.now(timezone.utc)))

        assert len(reconciler.pending) == 1
        assert len(reconciler) == 2

    def test_old_echo_outside_window(self, reconciler: ClientReconciler, make_message, chat_id, user_id) -> None:
        """Test a same-text message far in the past is not taken for the send."""
        reconciler.add_optimistic(chat_id, user_id, "Hello")

        reconciler.apply(
            make_message(
                chat_id,
                "Hello",
                sender_id=user_id,
                created_at=datetime.now(timezone.utc) - timedelta(minutes=5),
            )
        )

        assert len(reconciler.pending) == 1

    def test_fail_removes_placeholder(self, reconciler: ClientReconciler, chat_id, user_id) -> None:
        """Test a failed send disappears from the view."""
        pending = reconciler.add_optimistic(chat_id, user_id, "Hello")

        assert reconciler.fail(pending.key) is pending
        assert reconciler.view() == []
        assert reconciler.fail(pending.key) is None

    def test_pending_sorted_after_history(self, reconciler: ClientReconciler, make_message, chat_id, user_id) -> None:
        """Test a new send renders after earlier messages."""
        earlier = make_message(chat_id, "welcome", created_at=datetime.now(timezone.utc) - timedelta(seconds=30))
        reconciler.apply(earlier)

        pending = reconciler.add_optimistic(chat_id, user_id, "Hi")

        assert reconciler.view() == [earlier, pending]


def test_reset_forgets_everything(reconciler: ClientReconciler, make_message, chat_id, user_id) -> None:
    """Test reset clears confirmed and pending entries."""
    reconciler.apply(make_message(chat_id))
    reconciler.add_optimistic(chat_id, user_id, "Hi")

    reconciler.reset()

    assert len(reconciler) == 0
    assert reconciler.view() == []
