"""Metadata source adapters."""

from repo_refresher.adapters.sources.github_source import GitHubMetadataSource

__all__ = ["GitHubMetadataSource"]
