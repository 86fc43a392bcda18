import asyncio

import pytest

from chat import ChatCompanion
from models import ChatRole
from prompts import GREETING
from fakes import DummyClient


def test_starts_with_greeting():
    chat = ChatCompanion(DummyClient())
    assert [(m.role, m.content) for m in chat.messages] == [(ChatRole.MODEL, GREETING)]
    assert not chat.busy


def test_notify_user_and_ai():
    client = DummyClient(replies=["Okay, thinking of a good one..."])
    chat = ChatCompanion(client)
    asyncio.run(chat.notify(for_user="Starting on Level 1.", for_ai="Game Event: new round"))

    assert chat.messages[1].role is ChatRole.GAME_EVENT
    assert chat.messages[1].content == "Starting on Level 1."
    assert chat.messages[2].role is ChatRole.MODEL
    assert chat.messages[2].content == "Okay, thinking of a good one..."
    # the event itself is not shown to the player
    assert all("Game Event" not in m.content for m in chat.messages)
    sent = client.chat_calls[0][0]
    assert sent[0]["role"] == "system"
    assert sent[-1] == {"role": "user", "content": "Game Event: new round"}


def test_context_is_invisible():
    client = DummyClient(replies=["Your score is 3."])
    chat = ChatCompanion(client)

    async def scenario():
        await chat.send_context("Game Context Update: score 3")
        await chat.send_user_message("what's my score?")

    asyncio.run(scenario())
    assert [m.content for m in chat.messages] == [GREETING, "what's my score?", "Your score is 3."]
    history = client.chat_calls[0][0]
    assert {"role": "user", "content": "Game Context Update: score 3"} in history


def test_upstream_error_shows_system_line():
    chat = ChatCompanion(DummyClient(replies=[RuntimeError("OpenRouter error 429: slow down")]))
    asyncio.run(chat.notify(for_ai="Game Event: anything"))
    assert chat.messages[-1].role is ChatRole.SYSTEM
    assert "429" in chat.messages[-1].content


def test_empty_user_message_rejected():
    chat = ChatCompanion(DummyClient())
    with pytest.raises(ValueError):
        asyncio.run(chat.send_user_message("   "))


def test_reset_restores_greeting_and_drops_late_replies():
    client = DummyClient(replies=["late reply"])
    chat = ChatCompanion(client)

    async def scenario():
        chat.messages.append(chat.messages[0])
        task = asyncio.create_task(chat.notify(for_ai="Game Event: x"))
        await asyncio.sleep(0)
        chat.reset()
        await task

    asyncio.run(scenario())
    assert [m.content for m in chat.messages] == [GREETING]
