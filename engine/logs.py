import logging
import os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(log_dir=None, level=logging.INFO, *, filename="harvester.log"):
    """Console logging plus an optional append-only file under ``log_dir``."""
    root = logging.getLogger("")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    console.setLevel(level)
    root.addHandler(console)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(str(log_dir), filename), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(level)
        root.addHandler(file_handler)
    return root
