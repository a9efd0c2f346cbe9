"""
GitHub Integration Module

Provides the GitHub implementation of the platform client.
"""

from prbot.integrations.github.client import GitHubClient, apply_commit_changes

__all__ = ["GitHubClient", "apply_commit_changes"]
