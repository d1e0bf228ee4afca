import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILENAME = "devwp.log"


def setup_logging(log_dir: str, verbose: bool = False) -> Path:
    """
    Console + rotating file logging for the whole process.

    - File: <log_dir>/devwp.log, 5 MB x 3 backups.
    - Console: same level as the file.
    Safe to call more than once; handlers are only installed the first time.
    """
    level = logging.DEBUG if verbose else logging.INFO
    log_path = Path(log_dir).expanduser()
    log_path.mkdir(parents=True, exist_ok=True)
    logfile = log_path / LOG_FILENAME

    root = logging.getLogger()
    root.setLevel(level)

    has_file = any(
        isinstance(h, RotatingFileHandler)
        and getattr(h, "baseFilename", "") == os.path.abspath(logfile)
        for h in root.handlers
    )
    if not has_file:
        fh = RotatingFileHandler(logfile, maxBytes=5 * 1024 * 1024, backupCount=3)
        fh.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(fh)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root.addHandler(ch)

    for handler in root.handlers:
        handler.setLevel(level)

    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging initialized. file=%s", logfile)
    return log_path
