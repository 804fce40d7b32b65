import logging
from pathlib import Path


def get_logger(log_path, level=logging.INFO):
    """Package logger writing to a file and the console."""
    logger = logging.getLogger("golf_ranker")
    logger.setLevel(level)

    if not logger.handlers:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        ch = logging.StreamHandler()

        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        fh.setFormatter(formatter)
        ch.setFormatter(formatter)

        logger.addHandler(fh)
        logger.addHandler(ch)

    return logger
