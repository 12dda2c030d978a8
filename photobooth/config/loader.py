import logging
from pathlib import Path
from typing import Optional
import yaml
from photobooth.config.models import AppConfig

logger = logging.getLogger(__name__)

def load_config(path: Optional[Path]) -> AppConfig:
    """Loads the YAML config file; a missing file yields the built-in defaults."""
    if path is None or not path.exists():
        if path is not None:
            logger.info(f"Config {path} not found, using defaults")
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must contain a mapping at the top level")

    return AppConfig(**data)
