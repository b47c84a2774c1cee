"""
Structured logging module.

Provides JSON logging with run/part context propagation across asyncio tasks.

Import directly from sub-modules:
    from rangefetch.logging.setup import get_logger, setup_logging
    from rangefetch.logging.utilities import log_with_context
    from rangefetch.logging.context import log_context
"""
