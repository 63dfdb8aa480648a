# =============================================
# File: companion/utils/logging.py
# Purpose: Loguru file sink configuration
# =============================================
import os

from loguru import logger

_configured = False

def configure_logging() -> None:
    """Attach the rotating file sink once per process (LOG_FILE, default logs/app.log)."""
    global _configured
    if _configured:
        return
    logger.add(os.getenv("LOG_FILE", "logs/app.log"), rotation="10 MB")
    _configured = True
