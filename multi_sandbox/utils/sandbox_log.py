import functools
import logging
import pathlib as pl
import time

from multi_sandbox.utils import configuration


def get_sandbox_log_path(sb_type: str, log_dir: pl.Path | None = None) -> pl.Path:
    return (log_dir or configuration.SANDBOX_LOG_DIR) / f"{sb_type}.log"


@functools.cache
def sandbox_logger(sb_type: str, log_dir: pl.Path | None = None) -> logging.Logger:
    """Get logger for the `<sb_type>.log` file.

    The logger is configured per deployment type and log directory. It records details of every
    deployment (definitions, allocated ports, executed steps), so a failed deployment can be
    investigated later.
    """

    class UTCFormatter(logging.Formatter):
        converter = time.gmtime  # type: ignore[assignment]

    log_path = get_sandbox_log_path(sb_type=sb_type, log_dir=log_dir)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = UTCFormatter("%(asctime)s %(levelname)s %(message)s")
    handler = logging.FileHandler(log_path)
    handler.setFormatter(formatter)

    logger = logging.getLogger(f"sandbox_log.{log_path}")
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    # The records are meant just for the log file
    logger.propagate = False

    return logger
