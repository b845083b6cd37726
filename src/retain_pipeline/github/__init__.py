"""
Retain Pipeline GitHub Module.

Provides the REST client and the shared retry policy.
"""

__all__ = ["ArtifactPage", "GitHubClient", "RetryPolicy"]

from retain_pipeline.github.client import ArtifactPage, GitHubClient
from retain_pipeline.github.retry import RetryPolicy
