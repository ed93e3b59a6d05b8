"""Logging setup. Call setup_logging() once when the app starts."""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    # Streamlit reruns the script on every interaction
    if any(getattr(handler, "_diamond_calc", False) for handler in root.handlers):
        return

    root.setLevel(getattr(logging, level, logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler._diamond_calc = True
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root.addHandler(handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)
