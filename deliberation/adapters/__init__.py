"""Adapters for external collaborators: the OpenRouter API and conversation storage."""
