import asyncio
import json

import pytest

from content import OpenRouterContentProvider, playable_title
from exceptions import ContentFetchError
from fakes import DummyClient


def _concept(**overrides):
    data = {"concept": "Inception", "explanation": "My idea was a spinning top.", "imagePrompt": "A top, pixel art"}
    data.update(overrides)
    return json.dumps(data)


def test_fetch_builds_round_content():
    client = DummyClient(replies=[_concept()])
    provider = OpenRouterContentProvider(client)
    content = asyncio.run(provider.fetch(["Jaws", "Alien"], "claymation"))

    assert content.concept == "Inception"
    assert content.explanation == "My idea was a spinning top."
    assert content.image_url == "data:image/jpeg;base64,QUJD"
    assert client.image_prompts == ["A top, pixel art"]

    messages, kwargs = client.chat_calls[0]
    prompt = messages[0]["content"]
    assert "Jaws, Alien" in prompt
    assert "claymation" in prompt
    assert kwargs["json_mode"] is True


def test_fetch_accepts_fenced_json_and_cleans_title():
    client = DummyClient(replies=["```json\n" + _concept(concept="Dr. Strangelove") + "\n```"])
    content = asyncio.run(OpenRouterContentProvider(client).fetch([], "pixel art"))
    assert content.concept == "Dr Strangelove"


@pytest.mark.parametrize("reply", ["not json", _concept(imagePrompt=""), json.dumps(["Jaws"])])
def test_invalid_concept_raises(reply):
    client = DummyClient(replies=[reply])
    with pytest.raises(ContentFetchError):
        asyncio.run(OpenRouterContentProvider(client).fetch([], "pixel art"))
    assert client.image_prompts == []


def test_upstream_errors_become_fetch_errors():
    client = DummyClient(replies=[RuntimeError("OpenRouter error 500: down")])
    with pytest.raises(ContentFetchError):
        asyncio.run(OpenRouterContentProvider(client).fetch([], "pixel art"))

    client = DummyClient(replies=[_concept()], image_url=RuntimeError("no image"))
    with pytest.raises(ContentFetchError, match="failed to generate an image"):
        asyncio.run(OpenRouterContentProvider(client).fetch([], "pixel art"))


def test_playable_title():
    assert playable_title("Schindler's List") == "Schindlers List"
    assert playable_title("Star Wars: A New Hope") == "Star Wars A New Hope"
    assert playable_title("  Amélie ") == "Amélie"
