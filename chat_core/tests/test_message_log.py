from datetime import datetime, timezone

import pytest

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.identifiers import SequentialIdGenerator
from chat_core.domain.message_log import MessageLog
from chat_core.domain.models import ChatMessage


def make_log(*messages):
    return MessageLog(id_generator=SequentialIdGenerator(), messages=messages)


def test_append_assigns_id_and_timestamp():
    log = make_log()
    stored = log.append(ChatMessage(role="user", content="hi"))
    assert stored.id == "msg-1"
    assert stored.created_at is not None
    assert stored.created_at.tzinfo is not None
    assert len(log) == 1


def test_append_keeps_explicit_id_and_timestamp():
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    log = make_log()
    stored = log.append(ChatMessage(role="user", content="hi", id="custom", created_at=ts))
    assert stored.id == "custom"
    assert stored.created_at == ts


def test_snapshots_do_not_leak_mutations():
    log = make_log(ChatMessage(role="user", content="hi"))
    snap = log.snapshot()
    snap[0].content = "changed"
    assert log[0].content == "hi"


def test_replace_content_updates_in_place():
    log = make_log()
    msg = log.append(ChatMessage(role="assistant", content=""))
    assert log.replace_content(msg.id, "Hello")
    assert log.get(msg.id).content == "Hello"


def test_replace_content_unknown_id_is_noop():
    log = make_log(ChatMessage(role="user", content="hi"))
    assert not log.replace_content("missing", "x")
    assert [m.content for m in log] == ["hi"]


def test_remove_keeps_id_reserved():
    log = make_log()
    msg = log.append(ChatMessage(role="assistant", content=""))
    assert log.remove(msg.id)
    assert msg.id not in log
    with pytest.raises(ValidationError) as exc:
        log.append(ChatMessage(role="user", content="x", id=msg.id))
    assert exc.value.code == "DUPLICATE_MESSAGE_ID"


def test_truncate_after_keeps_target():
    log = make_log(
        ChatMessage(role="user", content="a"),
        ChatMessage(role="assistant", content="b"),
        ChatMessage(role="user", content="c"),
        ChatMessage(role="assistant", content="d"),
    )
    assert log.truncate_after("msg-3")
    assert [m.content for m in log] == ["a", "b", "c"]


def test_reset_keeps_system_message():
    log = make_log(
        ChatMessage(role="system", content="sys"),
        ChatMessage(role="user", content="a"),
    )
    log.reset(keep_system=True)
    assert [(m.role, m.content) for m in log] == [("system", "sys")]
    log.reset(keep_system=False)
    assert len(log) == 0


def test_reset_without_system_message_empties_log():
    log = make_log(ChatMessage(role="user", content="a"))
    log.reset(keep_system=True)
    assert log.snapshot() == []


def test_system_message_only_at_index_zero():
    log = make_log(ChatMessage(role="user", content="a"))
    with pytest.raises(ValidationError) as exc:
        log.append(ChatMessage(role="system", content="late"))
    assert exc.value.code == "SYSTEM_MESSAGE_POSITION"


def test_unknown_role_rejected():
    log = make_log()
    with pytest.raises(ValidationError):
        log.append(ChatMessage(role="tool", content="x"))


def test_last_index_of_scans_backwards():
    log = make_log(
        ChatMessage(role="system", content="s"),
        ChatMessage(role="user", content="u1"),
        ChatMessage(role="assistant", content="a1"),
        ChatMessage(role="user", content="u2"),
        ChatMessage(role="assistant", content="a2"),
    )
    assert log.last_index_of("user") == 3
    assert log.last_index_of("system") == 0
    assert make_log().last_index_of("user") == -1


def test_generator_returning_used_id_is_rejected():
    log = MessageLog(id_generator=SequentialIdGenerator(), messages=[])
    log.append(ChatMessage(role="user", content="a", id="msg-1"))
    with pytest.raises(ValidationError):
        log.append(ChatMessage(role="user", content="b"))
