"""
LLM access for bot bidders. Supports Anthropic, OpenAI and Gemini models.
"""

from dataclasses import dataclass
import logging
from typing import Optional

import anthropic
import openai
import requests

from .config import LLM_MAX_TOKENS, LLM_TIMEOUT_SECONDS, get_api_key, get_model_info


logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class LLMError(Exception):
    """A provider call failed or returned nothing usable."""


@dataclass
class PlayerResponse:
    """Response from an LLM player."""
    raw_response: str
    thinking: str = ""


def _ask_anthropic(model: str, system: str, prompt: str, api_key: str) -> PlayerResponse:
    client = anthropic.Anthropic(api_key=api_key, timeout=LLM_TIMEOUT_SECONDS)
    response = client.messages.create(
        model=model,
        max_tokens=LLM_MAX_TOKENS,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    text = "".join(block.text for block in response.content if block.type == "text")
    return PlayerResponse(raw_response=text)


def _ask_openai(model: str, system: str, prompt: str, api_key: str) -> PlayerResponse:
    client = openai.OpenAI(api_key=api_key, timeout=LLM_TIMEOUT_SECONDS)
    response = client.responses.create(
        model=model,
        instructions=system,
        input=prompt,
    )
    return PlayerResponse(raw_response=response.output_text or "")


def _ask_gemini(model: str, system: str, prompt: str, api_key: str) -> PlayerResponse:
    data = {
        "systemInstruction": {"parts": [{"text": system}]},
        "contents": [{"parts": [{"text": prompt}]}],
    }
    response = requests.post(
        GEMINI_URL.format(model=model),
        params={"key": api_key},
        json=data,
        timeout=LLM_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    parts = response.json()["candidates"][0]["content"]["parts"]
    text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
    return PlayerResponse(raw_response=text)


PROVIDERS = {
    "anthropic": _ask_anthropic,
    "openai": _ask_openai,
    "gemini": _ask_gemini,
}


def get_llm_response(provider: str, model: str, system: str, prompt: str,
                     api_key: Optional[str] = None) -> PlayerResponse:
    """
    Get a response from an LLM.

    Args:
        provider: 'anthropic', 'openai', or 'gemini'
        model: The provider's model name
        system: Standing instructions for the player
        prompt: The current round's message
        api_key: Optional API key (uses env var if not provided)

    Raises:
        LLMError: the call failed or the reply was empty
    """
    if provider not in PROVIDERS:
        raise LLMError(f"Unknown provider: {provider}")
    if api_key is None:
        api_key = get_api_key(provider)

    try:
        response = PROVIDERS[provider](model, system, prompt, api_key)
    except (anthropic.APIError, openai.OpenAIError, requests.RequestException, KeyError, IndexError) as e:
        raise LLMError(f"{provider} request failed: {e}") from e

    if not response.raw_response.strip():
        raise LLMError(f"{provider} returned an empty response")
    logger.debug("%s/%s replied with %d characters", provider, model, len(response.raw_response))
    return PlayerResponse(raw_response=response.raw_response.strip(), thinking=response.thinking)


class LLMPlayer:
    """
    An LLM seat configured by model id from the MODELS table.

    Usage:
        player = LLMPlayer("claude-4.5-sonnet", system_prompt="You set prices...")
        response = player.get_response("Round 2 of 5 ...")
    """

    def __init__(self, model_id: str, system_prompt: str, api_key: Optional[str] = None):
        self.model_id = model_id
        self.provider, self.model = get_model_info(model_id)
        self.system_prompt = system_prompt
        self.api_key = api_key

    def get_response(self, user_message: str) -> PlayerResponse:
        return get_llm_response(
            provider=self.provider,
            model=self.model,
            system=self.system_prompt,
            prompt=user_message,
            api_key=self.api_key,
        )
