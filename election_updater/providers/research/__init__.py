"""Research service providers."""

from election_updater.providers.research.anthropic_provider import AnthropicResearchProvider

__all__ = ["AnthropicResearchProvider"]
