"""
Config-based Visibility Pipeline.
"""

from uvjones.pipeline.runner import run_pipeline, PipelineRunner, RunSummary
from uvjones.pipeline.config_parser import load_config, PipelineConfig, ProcessingConfig

__all__ = [
    "run_pipeline",
    "PipelineRunner",
    "RunSummary",
    "load_config",
    "PipelineConfig",
    "ProcessingConfig",
]
