"""Tests for the Groq-backed generation client, with the SDK replaced by a scripted fake."""

from types import SimpleNamespace

import groq
import httpx
import pytest

from folio.core.errors import GenerationProviderError
from folio.features.generation.client import GroqGenerationClient, StreamFragment


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


def _connection_error():
    return groq.APIConnectionError(request=httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions"))


class FakeStream:
    def __init__(self, chunks, error_after=None):
        self.chunks = chunks
        self.error_after = error_after
        self.closed = False

    def __iter__(self):
        for i, chunk in enumerate(self.chunks):
            if self.error_after is not None and i >= self.error_after:
                raise _connection_error()
            yield chunk

    def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.response


def fake_groq(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_complete_sends_context_as_system_message():
    message = SimpleNamespace(content="Once upon a time")
    completions = FakeCompletions(response=SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    client = GroqGenerationClient(api_key="k", model="test-model", client=fake_groq(completions))

    assert client.complete("Write", "You are a writer") == "Once upon a time"
    assert completions.kwargs["model"] == "test-model"
    assert completions.kwargs["messages"] == [
        {"role": "system", "content": "You are a writer"},
        {"role": "user", "content": "Write"},
    ]


def test_complete_maps_provider_errors():
    client = GroqGenerationClient(api_key="k", client=fake_groq(FakeCompletions(error=_connection_error())))
    with pytest.raises(GenerationProviderError):
        client.complete("Write")


def test_complete_treats_empty_content_as_failure():
    message = SimpleNamespace(content="")
    completions = FakeCompletions(response=SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    client = GroqGenerationClient(api_key="k", client=fake_groq(completions))
    with pytest.raises(GenerationProviderError):
        client.complete("Write")


def test_missing_api_key_is_a_provider_error():
    client = GroqGenerationClient(api_key=None)
    client.api_key = None
    with pytest.raises(GenerationProviderError):
        client.complete("Write")


def test_stream_skips_empty_deltas_and_ends_with_done():
    stream = FakeStream([_chunk("Hel"), _chunk(None), _chunk("lo")])
    client = GroqGenerationClient(api_key="k", client=fake_groq(FakeCompletions(response=stream)))

    fragments = list(client.stream("Write"))

    assert fragments == [StreamFragment("Hel"), StreamFragment("lo"), StreamFragment("", done=True)]
    assert stream.closed


def test_stream_error_mid_way_is_mapped_and_closes():
    stream = FakeStream([_chunk("a"), _chunk("b")], error_after=1)
    client = GroqGenerationClient(api_key="k", client=fake_groq(FakeCompletions(response=stream)))

    received = []
    with pytest.raises(GenerationProviderError):
        for fragment in client.stream("Write"):
            received.append(fragment.content)
    assert received == ["a"]
    assert stream.closed
