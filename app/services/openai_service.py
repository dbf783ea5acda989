import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

import openai

from app.core.config import settings
from app.core.exceptions import ProviderTimeoutError, ProviderUnavailableError
from app.core.monitoring import track_ai_service, ai_service_tokens

logger = logging.getLogger(__name__)

SKIN_DESCRIPTION_PROMPT = """
Describe ONLY observable facial skin features from the image.

INSTRUCTIONS:
- Focus on skin only; avoid identity and attractiveness.
- Do NOT diagnose medical conditions.
- Be precise, neutral and uncertainty-aware.

INCLUDE:
1) Findings by facial region (forehead, cheeks, nose/T-zone, jaw/chin, under-eyes).
2) Lesion types if present (comedones, papules, pustules, cyst-like bumps, marks).
3) Redness, hyperpigmentation, texture irregularities, pore visibility.
4) Oil/shine vs dryness/dehydration cues.
5) Relative severity (mild / moderate / pronounced).
6) Symmetry or clustering patterns.
7) Image quality notes affecting certainty (lighting, blur, angle).

EXCLUDE:
- Causes or diagnoses
- Treatment advice
- Attractiveness judgments

FORMAT:
Short bullet-style sentences or a concise paragraph describing what is visible and where.
If something is not clearly visible, say so explicitly.
"""


class CompletionClient(Protocol):
    """The narrow provider capability the analysis pipeline depends on"""

    async def complete(
        self,
        prompt: str,
        image_data_uri: str,
        *,
        follow_up: Optional[str] = None,
        temperature: float,
        max_tokens: int,
    ) -> str: ...

    async def embed(self, text: str) -> List[float]: ...


class OpenAIService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = settings.OPENAI_MODEL,
        vision_model: str = settings.OPENAI_VISION_MODEL,
        embedding_model: str = settings.EMBEDDING_MODEL,
        timeout: float = settings.OPENAI_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model
        self.vision_model = vision_model
        self.embedding_model = embedding_model
        self.timeout = timeout
        self._client: Optional[openai.AsyncOpenAI] = None

    @property
    def client(self) -> openai.AsyncOpenAI:
        # Built on first use so the app can start without a key
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailableError("OPENAI_API_KEY is not configured")
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=settings.OPENAI_MAX_RETRIES,
            )
        return self._client

    async def _call(self, coro_factory):
        """
        Run one provider call under a deadline and map SDK errors onto the
        provider failure kinds.
        """
        try:
            return await asyncio.wait_for(coro_factory(), timeout=self.timeout)
        except (asyncio.TimeoutError, openai.APITimeoutError) as e:
            logger.warning(f"OpenAI call exceeded {self.timeout}s deadline")
            raise ProviderTimeoutError(f"OpenAI call timed out after {self.timeout}s") from e
        except openai.APIConnectionError as e:
            logger.warning(f"OpenAI connection failed: {e}")
            raise ProviderUnavailableError(f"OpenAI connection failed: {e}") from e
        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limit hit: {e}")
            raise ProviderUnavailableError("OpenAI rate limit exceeded") from e
        except openai.APIStatusError as e:
            logger.warning(f"OpenAI returned status {e.status_code}: {e}")
            raise ProviderUnavailableError(f"OpenAI request failed with status {e.status_code}") from e

    def _track_usage(self, response: Any) -> None:
        usage = getattr(response, "usage", None)
        if usage is None:
            return
        prompt_tokens = getattr(usage, "prompt_tokens", None) or 0
        completion_tokens = getattr(usage, "completion_tokens", None) or 0
        ai_service_tokens.labels(service="openai", type="prompt").inc(prompt_tokens)
        ai_service_tokens.labels(service="openai", type="completion").inc(completion_tokens)

    @staticmethod
    def _first_message_text(response: Any) -> str:
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    @track_ai_service("openai", "skin_analysis")
    async def complete(
        self,
        prompt: str,
        image_data_uri: str,
        *,
        follow_up: Optional[str] = None,
        temperature: float = settings.ANALYSIS_TEMPERATURE,
        max_tokens: int = settings.ANALYSIS_MAX_TOKENS,
    ) -> str:
        """
        Send the instruction + photo, plus an optional corrective follow-up
        message, and return the raw completion text.
        """
        messages: List[Dict[str, Any]] = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_data_uri}},
                ],
            }
        ]
        if follow_up:
            messages.append({"role": "user", "content": [{"type": "text", "text": follow_up}]})

        client = self.client
        response = await self._call(
            lambda: client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        )
        self._track_usage(response)
        return self._first_message_text(response)

    @track_ai_service("openai", "describe_skin")
    async def describe_skin(self, image_data_uri: str) -> str:
        """
        Skin-focused, non-diagnostic description of the photo, used as the
        text behind the image embedding.
        """
        client = self.client
        response = await self._call(
            lambda: client.chat.completions.create(
                model=self.vision_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": SKIN_DESCRIPTION_PROMPT},
                            {"type": "image_url", "image_url": {"url": image_data_uri}},
                        ],
                    }
                ],
                temperature=0.2,
                max_tokens=500,
            )
        )
        self._track_usage(response)

        description = self._first_message_text(response).strip()
        if not description:
            raise ProviderUnavailableError("No description returned from vision model")
        return description

    @track_ai_service("openai", "embedding")
    async def embed(self, text: str) -> List[float]:
        client = self.client
        response = await self._call(
            lambda: client.embeddings.create(model=self.embedding_model, input=text)
        )
        return list(response.data[0].embedding)

    async def embed_image(self, image_data_uri: str) -> List[float]:
        """Describe the skin in the photo, then embed the description"""
        description = await self.describe_skin(image_data_uri)
        return await self.embed(description)


# Global instance
openai_service = OpenAIService()
