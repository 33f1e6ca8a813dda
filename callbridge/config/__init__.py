"""
Configuration module for the call bridge application.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based configuration.

Key components:
- constants: Defines application-wide constants used across modules, including
  Twilio and OpenAI event names, audio formats, VAD thresholds and default models.
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.
- settings: BridgeSettings, the environment-driven runtime configuration.

Usage examples:
```python
from callbridge.config.constants import LOGGER_NAME, DEFAULT_REALTIME_MODEL
from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import BridgeSettings

logger = configure_logging()
settings = BridgeSettings()
logger.info(f"Using realtime model {settings.realtime_model}")
```
"""

# Config module initialization
