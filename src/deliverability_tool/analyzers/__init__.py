"""Analyzers for authentication, DNS, blacklist, content, header and spam checks.

Analyzers auto-register themselves using the @registry.register decorator.
This module auto-imports all analyzer modules to trigger their registration.
"""

import importlib
import pkgutil
from pathlib import Path

# Shared helpers, not plugins
_NON_PLUGIN_MODULES = {"protocol", "dns_utils", "http_utils", "record_validators"}

# Auto-import all analyzer modules to trigger @registry.register decorators
_analyzer_dir = Path(__file__).parent
for module_info in pkgutil.iter_modules([str(_analyzer_dir)]):
    if not module_info.name.startswith("_") and module_info.name not in _NON_PLUGIN_MODULES:
        importlib.import_module(f".{module_info.name}", package=__name__)

__all__ = []
