import asyncio

import pytest

from services.session_registry import DeliverySession, SessionRegistry
from conftest import make_remote

CHAT = "120363000000000001@g.us"


def make_session(code="CS101", count=3, batch_limit=None, chat_id=CHAT):
    files = tuple(make_remote(f"{code} file {i}.pdf") for i in range(count))
    return DeliverySession(chat_id=chat_id, subject_code=code, files=files, batch_limit=batch_limit)


def test_session_states():
    session = make_session(count=3, batch_limit=2)
    assert session.state == "active" and session.remaining == 3
    session.cursor = 2
    assert session.state == "stalled" and not session.can_advance()
    session.paused = True
    assert session.state == "paused"
    session.cursor = 3
    assert session.state == "completed"


def test_put_replaces_and_remove_checks_identity():
    registry = SessionRegistry()
    first, second = make_session("CS101"), make_session("MTH302")
    registry.put(first)
    registry.put(second)
    assert registry.get(CHAT) is second
    assert not registry.is_current(first)
    assert registry.chat_ids() == [CHAT]

    assert not registry.remove(CHAT, first)
    assert registry.remove(CHAT, second)
    assert registry.get(CHAT) is None
    assert not registry.remove(CHAT)


@pytest.mark.asyncio
async def test_task_slot_belongs_to_one_session_and_clears_when_done():
    registry = SessionRegistry()
    session, other = make_session("CS101"), make_session("MTH302")
    gate = asyncio.Event()
    task = asyncio.create_task(gate.wait())
    registry.set_task(session, task)

    assert registry.running_task(session) is task
    assert registry.running_task(other) is None
    assert registry.get_task(CHAT) is task

    gate.set()
    await task
    await asyncio.sleep(0)
    assert registry.get_task(CHAT) is None
    assert registry.running_task(session) is None
