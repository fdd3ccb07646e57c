# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for collection provisioning.
"""

from core.config.defaults import (
    TimeoutDefaults,
    ClusterDefaults,
    StoreDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "TimeoutDefaults",
    "ClusterDefaults",
    "StoreDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
