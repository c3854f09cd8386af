import logging

from core.transcript_walker import (
    DEPTH_LIMIT_WARNING,
    CYCLE_WARNING,
    find_roots,
    iter_children,
    walk_conversation,
)


def _message(uuid, parent=None, index=0, created_at="2023-01-01T12:00:00Z", sender="assistant"):
    return {
        "uuid": uuid,
        "parent_message_uuid": parent,
        "index": index,
        "created_at": created_at,
        "sender": sender,
        "text": "",
    }


def _chain(length):
    messages = [_message("m0", parent="root-sentinel")]
    for i in range(1, length):
        messages.append(_message(f"m{i}", parent=f"m{i - 1}", index=i))
    return {"chat_messages": messages}


def test_walk_visits_parent_then_children_by_creation_time():
    payload = {
        "chat_messages": [
            _message("c2", parent="p", index=2, created_at="2023-01-01T12:05:00Z"),
            _message("c1", parent="p", index=1, created_at="2023-01-01T12:00:00Z"),
            _message("g1", parent="c1", index=3, created_at="2023-01-01T12:01:00Z"),
            _message("p", index=0),
        ]
    }
    result = walk_conversation(payload)
    assert [m["uuid"] for m in result.messages] == ["p", "c1", "g1", "c2"]
    assert result.depths == [0, 1, 2, 1]
    assert not result.depth_limit_hit


def test_iter_children_orders_by_creation_time():
    parent = _message("p")
    payload = {
        "chat_messages": [
            parent,
            _message("late", parent="p", created_at="2023-01-02T00:00:00Z"),
            _message("early", parent="p", created_at="2023-01-01T00:00:00Z"),
            _message("other", parent="x"),
        ]
    }
    assert [m["uuid"] for m in iter_children(parent, payload)] == ["early", "late"]
    assert iter_children({"text": "no uuid"}, payload) == []


def test_find_roots_orders_by_index():
    payload = {
        "chat_messages": [
            _message("b", index=2),
            _message("a", parent="00000000-0000-4000-8000-000000000000", index=0),
            _message("child", parent="a", index=1),
        ]
    }
    assert [m["uuid"] for m in find_roots(payload)] == ["a", "b"]


def test_walk_stops_at_depth_ceiling_and_warns(caplog):
    payload = _chain(6)
    sink = logging.getLogger("walk-test")
    with caplog.at_level(logging.WARNING, logger="walk-test"):
        result = walk_conversation(payload, max_depth=3, sink=sink)

    assert [m["uuid"] for m in result.messages] == ["m0", "m1", "m2", "m3"]
    assert result.depth_limit_hit
    assert result.warnings == [DEPTH_LIMIT_WARNING]
    assert any(DEPTH_LIMIT_WARNING in record.getMessage() for record in caplog.records)


def test_walk_from_message_beyond_ceiling_keeps_that_message():
    payload = _chain(3)
    start = payload["chat_messages"][0]
    result = walk_conversation(payload, max_depth=100, start=start, start_depth=101)

    assert [m["uuid"] for m in result.messages] == ["m0"]
    assert result.depth_limit_hit


def test_walk_terminates_on_duplicate_and_self_references():
    looping = _message("loop", parent="loop")
    payload = {
        "chat_messages": [
            _message("a"),
            _message("b", parent="a"),
            _message("b", parent="a"),
            looping,
            "garbage",
        ]
    }
    result = walk_conversation(payload)
    assert [m["uuid"] for m in result.messages] == ["a", "b", "loop"]
    assert result.warnings == [CYCLE_WARNING]

    only_loop = walk_conversation(payload, start=looping)
    assert [m["uuid"] for m in only_loop.messages] == ["loop"]


def test_walk_empty_payload():
    result = walk_conversation({"chat_messages": []})
    assert result.messages == []
    assert result.warnings == []


def test_walk_recovers_messages_in_a_rootless_cycle(caplog):
    payload = {
        "chat_messages": [
            _message("b", parent="a", index=1, created_at="2023-01-01T12:01:00Z"),
            _message("a", parent="b", index=0),
            _message("c", parent="b", index=2, created_at="2023-01-01T12:02:00Z"),
        ]
    }
    sink = logging.getLogger("walk-test")
    with caplog.at_level(logging.WARNING, logger="walk-test"):
        result = walk_conversation(payload, sink=sink)

    assert [m["uuid"] for m in result.messages] == ["a", "b", "c"]
    assert result.depths == [0, 1, 2]
    assert result.warnings == [CYCLE_WARNING]
    assert not result.depth_limit_hit
    assert any(CYCLE_WARNING in record.getMessage() for record in caplog.records)


def test_walk_below_ceiling_does_not_report_detached_messages():
    result = walk_conversation(_chain(6), max_depth=2)
    assert [m["uuid"] for m in result.messages] == ["m0", "m1", "m2"]
    assert result.warnings == [DEPTH_LIMIT_WARNING]


def test_walk_warns_for_message_beyond_ceiling_without_children():
    lone = _message("lone")
    result = walk_conversation({"chat_messages": []}, max_depth=100, start=lone, start_depth=101)

    assert [m["uuid"] for m in result.messages] == ["lone"]
    assert result.depth_limit_hit
    assert result.warnings == [DEPTH_LIMIT_WARNING]


def test_walk_at_ceiling_without_children_does_not_warn():
    lone = _message("lone")
    result = walk_conversation({"chat_messages": [lone]}, max_depth=3, start=lone, start_depth=3)
    assert not result.depth_limit_hit
    assert result.warnings == []
