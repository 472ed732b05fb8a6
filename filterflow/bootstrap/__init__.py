"""
bootstrap/ - Bootstrap Layer

Provides configuration loading, logging setup and the demo entry point.
"""

from .config import (
    FilterFlowConfig,
    PropagationConfig,
    SelectionConfig,
    LoggingConfig,
    load_config,
    get_config,
)

from .entrypoints import (
    demo_main,
    setup_logging,
)


__all__ = [
    # Config
    "FilterFlowConfig",
    "PropagationConfig",
    "SelectionConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    # Entry points
    "demo_main",
    "setup_logging",
]
