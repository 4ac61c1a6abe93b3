"""
deployer.processors - Pipeline Stages
=======================================

    Processor (ABC)
        ├── GitPullProcessor     "git_pull"     (always first, fatal on error)
        └── FileOutputProcessor  "file_output"  (deployment summaries)

Usage:
    from deployer.processors import Processor, register_processor
"""

from deployer.processors.base import Processor
from deployer.processors.file_output import FileOutputProcessor
from deployer.processors.git_pull import REPROCESS_ALL_FILES_PARAM, GitPullProcessor
from deployer.processors.registry import (
    ProcessorContext,
    ProcessorFactory,
    available_processors,
    create_processor,
    register_processor,
    unregister_processor,
)

__all__ = [
    "Processor",
    "GitPullProcessor",
    "FileOutputProcessor",
    "REPROCESS_ALL_FILES_PARAM",
    "ProcessorContext",
    "ProcessorFactory",
    "available_processors",
    "create_processor",
    "register_processor",
    "unregister_processor",
]
