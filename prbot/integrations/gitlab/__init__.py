"""
GitLab Integration Module

Provides the GitLab implementation of the platform client.
"""

from prbot.integrations.gitlab.client import GitLabClient

__all__ = ["GitLabClient"]
