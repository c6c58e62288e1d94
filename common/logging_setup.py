"""
common.logging_setup

Set up standard logging for the project.
"""
import logging

def setup_logging(level: int | str = logging.INFO):
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
