"""
Shared components for the Bertrand arena.
"""

from .llm_player import LLMError, LLMPlayer, PlayerResponse, get_llm_response
from .config import API_KEYS, MODELS

__all__ = ['LLMError', 'LLMPlayer', 'PlayerResponse', 'get_llm_response', 'API_KEYS', 'MODELS']
