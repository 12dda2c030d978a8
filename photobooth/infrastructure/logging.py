import logging
import sys
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def setup_logging(log_dir: Path, debug: bool = False) -> logging.Logger:
    """File log with full detail, stderr only for warnings and errors."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "photobooth.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    fh = logging.FileHandler(log_file, encoding='utf-8')
    fh.setLevel(logging.DEBUG if debug else logging.INFO)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.WARNING)
    ch.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    root.addHandler(fh)
    root.addHandler(ch)

    logger = logging.getLogger("photobooth")
    logger.debug(f"Logging to {log_file}")
    return logger
