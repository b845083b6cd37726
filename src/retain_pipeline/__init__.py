"""
Retain Pipeline Run - durable retention of CI pipeline artifacts.

Publishes the artifacts of a pipeline run, with provenance metadata,
as attachments on an immutably-tagged release of the repository.
"""

__version__ = "0.1.0"

__all__ = []
