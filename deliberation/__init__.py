"""LLM deliberation: ask a council of models, peer-rank the answers, synthesize one reply."""

__version__ = "0.1.0"
