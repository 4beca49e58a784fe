"""Core components of the email-deliverability-tool.

This package contains the message model, the analyzer registry and the
configuration layer. Report generation lives in core.report.
"""

from .registry import AnalyzerMetadata, AnalyzerRegistry, registry
from .config_manager import ConfigManager, GlobalConfig  # noqa: I001
from .message import EmailMessage, MessagePart

__all__ = [
    "ConfigManager",
    "GlobalConfig",
    "EmailMessage",
    "MessagePart",
    "registry",
    "AnalyzerMetadata",
    "AnalyzerRegistry",
]
