# app/ai/llm.py
"""Vision-capable LLM provider abstraction layer."""

from typing import Optional, Any, Dict
from abc import ABC, abstractmethod
import base64
import json

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from app.core.config import Settings
from app.core.logging import get_logger
from app.core.exceptions import AnalysisError

logger = get_logger(__name__)


DAMAGE_SYSTEM_PROMPT = (
    "You are a vehicle damage assessor for an insurance company. "
    "Look only at what is visible in the photograph."
)

DAMAGE_PROMPT = """Describe the vehicle damage visible in this photo.

Return a JSON object with exactly these keys:
- "description": one sentence describing the vehicle and its damage
- "tags": list of short lowercase words for what you see (e.g. "dented", "bumper", "scratched")
- "objects": list of objects in the photo (e.g. "car", "truck", "tree")
- "confidence": number between 0 and 1 for how sure you are of the description

Respond with valid JSON only. No markdown, no explanation."""


class LLMProvider(ABC):
    """Abstract LLM provider interface."""

    @abstractmethod
    def get_model(self) -> BaseChatModel:
        """Get the LangChain chat model."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Get provider name."""
        pass


class GroqProvider(LLMProvider):
    """Groq provider running a multimodal Llama model."""

    def __init__(self, config: Settings):
        self.config = config
        self._model: Optional[BaseChatModel] = None

    def get_name(self) -> str:
        return "groq"

    def get_model(self) -> BaseChatModel:
        if self._model is None:
            try:
                from langchain_groq import ChatGroq
                self._model = ChatGroq(
                    model_name=self.config.GROQ_VISION_MODEL,
                    api_key=self.config.GROQ_API_KEY,
                    temperature=self.config.LLM_TEMPERATURE,
                    max_tokens=self.config.LLM_MAX_TOKENS
                )
                logger.info(f"Initialized Groq vision model: {self.config.GROQ_VISION_MODEL}")
            except Exception as e:
                raise AnalysisError(f"groq: {e}")
        return self._model


class GoogleProvider(LLMProvider):
    """Google Gemini provider."""

    def __init__(self, config: Settings):
        self.config = config
        self._model: Optional[BaseChatModel] = None

    def get_name(self) -> str:
        return "google"

    def get_model(self) -> BaseChatModel:
        if self._model is None:
            try:
                from langchain_google_genai import ChatGoogleGenerativeAI
                self._model = ChatGoogleGenerativeAI(
                    model=self.config.GOOGLE_MODEL,
                    google_api_key=self.config.GOOGLE_API_KEY,
                    temperature=self.config.LLM_TEMPERATURE,
                    max_output_tokens=self.config.LLM_MAX_TOKENS
                )
                logger.info(f"Initialized Google vision model: {self.config.GOOGLE_MODEL}")
            except Exception as e:
                raise AnalysisError(f"google: {e}")
        return self._model


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class VisionService:
    """
    Sends one image plus the damage prompt to the configured provider and
    parses the JSON reply. No retries; a failed call raises AnalysisError.
    """

    def __init__(self, provider: LLMProvider):
        self._provider = provider

    @classmethod
    def from_settings(cls, config: Settings) -> "VisionService":
        provider_name = config.VISION_PROVIDER.lower()
        if provider_name == "groq":
            provider = GroqProvider(config)
        elif provider_name == "google":
            provider = GoogleProvider(config)
        else:
            raise ValueError(f"Unknown vision provider: {provider_name}")
        logger.info(f"Vision service initialized with provider: {provider_name}")
        return cls(provider)

    @property
    def provider_name(self) -> str:
        return self._provider.get_name()

    def describe_image(self, image: bytes, mime_type: str) -> Dict[str, Any]:
        encoded = base64.b64encode(image).decode("ascii")
        messages = [
            SystemMessage(content=DAMAGE_SYSTEM_PROMPT),
            HumanMessage(content=[
                {"type": "text", "text": DAMAGE_PROMPT},
                {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
            ]),
        ]

        try:
            response = self._provider.get_model().invoke(messages)
        except AnalysisError:
            raise
        except Exception as e:
            logger.error(f"Vision invocation failed ({self.provider_name}): {e}")
            raise AnalysisError(str(e)) from e

        raw = response.content if hasattr(response, "content") else str(response)
        if isinstance(raw, list):
            raw = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in raw
            )

        try:
            parsed = json.loads(_strip_fences(raw))
        except json.JSONDecodeError as e:
            logger.debug(f"Raw vision response: {raw}")
            raise AnalysisError(f"invalid JSON from vision model: {e}") from e

        if not isinstance(parsed, dict):
            raise AnalysisError("vision model did not return an object")
        return parsed
