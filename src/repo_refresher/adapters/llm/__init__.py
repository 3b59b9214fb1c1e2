"""LLM adapters."""

from repo_refresher.adapters.llm.claude_translator import ClaudeTranslator

__all__ = ["ClaudeTranslator"]
