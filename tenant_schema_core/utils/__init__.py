"""Package logging: console output and optional Azure queue shipping."""

from .logger import AzureQueueHandler, ContextAwareLogger, configure_logging, get_logger

__all__ = ["AzureQueueHandler", "ContextAwareLogger", "configure_logging", "get_logger"]
