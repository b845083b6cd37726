"""
Retain Pipeline stages.

Provides the six stages of a retention run and the runner that
sequences them.
"""

__all__ = [
    "InventoryCollector",
    "ReleasePublisher",
    "RetentionPipeline",
    "Stage",
    "TransferManager",
    "assess",
    "assess_capability",
    "build_descriptor",
    "format_size",
    "summarize",
]

from retain_pipeline.pipeline.assessor import assess, assess_capability
from retain_pipeline.pipeline.descriptor import build_descriptor, format_size
from retain_pipeline.pipeline.inventory import InventoryCollector
from retain_pipeline.pipeline.publisher import ReleasePublisher
from retain_pipeline.pipeline.runner import RetentionPipeline, Stage
from retain_pipeline.pipeline.summarizer import summarize
from retain_pipeline.pipeline.transfer import TransferManager
