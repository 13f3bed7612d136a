"""Model provider transport."""

from taskcli.providers.base import LLMProvider
from taskcli.providers.mock import MockProvider

__all__ = ["LLMProvider", "MockProvider"]
