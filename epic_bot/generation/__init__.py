"""
Text generation backend: HTTP client, prompts and the Generation Gateway.
"""

from epic_bot.generation.client import AnthropicClient
from epic_bot.generation.gateway import GenerationGateway
from epic_bot.generation.prompts import StoryContext

__all__ = ["AnthropicClient", "GenerationGateway", "StoryContext"]
