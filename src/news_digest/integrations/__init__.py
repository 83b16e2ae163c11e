"""Concrete collaborators: story source, content fetcher, LLM backends."""
