import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import openai
import pytest

from app.core.exceptions import ProviderTimeoutError, ProviderUnavailableError
from app.services.openai_service import OpenAIService


def _completion(text, prompt_tokens=120, completion_tokens=80):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


@pytest.fixture
def mock_openai_client():
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=_completion('{"ok": true}'))
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.5, 0.25])])
    )
    return client


@pytest.fixture
def service(mock_openai_client):
    openai_service = OpenAIService(api_key="sk-test", model="gpt-4o-mini", timeout=0.2)
    openai_service._client = mock_openai_client
    return openai_service


@pytest.mark.asyncio
async def test_missing_api_key_is_unavailable():
    service = OpenAIService(api_key="")

    with pytest.raises(ProviderUnavailableError):
        await service.complete("prompt", "data:image/jpeg;base64,AA", temperature=0.4, max_tokens=10)


@pytest.mark.asyncio
async def test_complete_sends_prompt_and_image(service, mock_openai_client):
    text = await service.complete("prompt", "data:image/jpeg;base64,AA", temperature=0.4, max_tokens=1600)

    assert text == '{"ok": true}'
    kwargs = mock_openai_client.chat.completions.create.await_args.kwargs
    assert kwargs["temperature"] == 0.4
    assert kwargs["max_tokens"] == 1600
    assert len(kwargs["messages"]) == 1
    content = kwargs["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "prompt"}
    assert content[1]["image_url"]["url"] == "data:image/jpeg;base64,AA"


@pytest.mark.asyncio
async def test_complete_appends_follow_up(service, mock_openai_client):
    await service.complete(
        "prompt", "data:image/jpeg;base64,AA", follow_up="fix it", temperature=0.2, max_tokens=1600
    )

    messages = mock_openai_client.chat.completions.create.await_args.kwargs["messages"]
    assert len(messages) == 2
    assert messages[1]["content"][0]["text"] == "fix it"


@pytest.mark.asyncio
async def test_empty_choices_give_empty_text(service, mock_openai_client):
    mock_openai_client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[], usage=None))
    assert await service.complete("p", "data:,", temperature=0.4, max_tokens=10) == ""


@pytest.mark.asyncio
async def test_deadline_raises_timeout(service, mock_openai_client):
    async def slow_create(**kwargs):
        await asyncio.sleep(5)

    mock_openai_client.chat.completions.create = slow_create

    with pytest.raises(ProviderTimeoutError):
        await service.complete("p", "data:,", temperature=0.4, max_tokens=10)


@pytest.mark.asyncio
async def test_connection_error_is_unavailable(service, mock_openai_client):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    mock_openai_client.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(request=request))

    with pytest.raises(ProviderUnavailableError) as exc_info:
        await service.complete("p", "data:,", temperature=0.4, max_tokens=10)

    assert not isinstance(exc_info.value, ProviderTimeoutError)


@pytest.mark.asyncio
async def test_embed_image_describes_then_embeds(service, mock_openai_client):
    mock_openai_client.chat.completions.create = AsyncMock(return_value=_completion("oily T-zone, papules on cheeks"))

    embedding = await service.embed_image("data:image/jpeg;base64,AA")

    assert embedding == [0.5, 0.25]
    assert mock_openai_client.embeddings.create.await_args.kwargs["input"] == "oily T-zone, papules on cheeks"


@pytest.mark.asyncio
async def test_empty_description_is_unavailable(service, mock_openai_client):
    mock_openai_client.chat.completions.create = AsyncMock(return_value=_completion("   "))

    with pytest.raises(ProviderUnavailableError):
        await service.embed_image("data:image/jpeg;base64,AA")
