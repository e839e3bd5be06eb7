"""
Orchestrator Package - Process Coordination Layer.

============================================================
PACKAGE OVERVIEW
============================================================
Wires the whale monitor together and runs it:

    LogSubscriptionManager --RawLog--> WhalePipeline.submit
        -> decode -> resolve -> classify -> qualify
        -> deduplicate -> persist -> notify

============================================================
QUICK START
============================================================
Command line usage::

    whale-watch --watchlist tokens.json
    whale-watch --init-db

Programmatic usage::

    import asyncio
    from orchestrator import MonitorConfig, create_monitor, setup_logging

    async def main():
        config = MonitorConfig.from_env()
        setup_logging(config.log_level, config.log_format)
        await create_monitor(config).run_forever()

    asyncio.run(main())

============================================================
"""

from orchestrator.config import MonitorConfig, get_config, set_config
from orchestrator.pipeline import WhalePipeline
from orchestrator.core import (
    WhaleMonitor,
    correlation_id,
    create_monitor,
    setup_logging,
)
from orchestrator.cli import (
    build_config,
    create_parser,
    async_main,
    main,
)

__version__ = "1.0.0"

__all__ = [
    "MonitorConfig",
    "get_config",
    "set_config",
    "WhalePipeline",
    "WhaleMonitor",
    "correlation_id",
    "create_monitor",
    "setup_logging",
    "build_config",
    "create_parser",
    "async_main",
    "main",
]
