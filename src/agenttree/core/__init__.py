"""Core runtime pieces: providers, tokens, prompts."""
