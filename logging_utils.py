"""
Run logging for store analyses.

One log file per analysis run collects every stage module's records (the root
logger carries the handlers) plus anything printed to the terminal. Failure
records produced here are what the file store keeps under failed/.
"""

import logging
import sys
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
RUN_LOGGER_NAME = "store_analysis.run"


def _run_handlers(log_file_path: str) -> List[logging.Handler]:
    file_handler = logging.FileHandler(log_file_path, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    return [file_handler, console_handler]


def setup_run_logging(
    output_dir: str, store_name: str, analysis_id: Optional[str] = None
) -> Tuple[logging.Logger, str]:
    """
    Route all logging for one analysis into ``run_<analysis_id>_<timestamp>.log``.

    The root logger is reset and given a DEBUG file handler and an INFO
    console handler, so every ``logging.getLogger(__name__)`` in the stage
    modules lands in the same file.

    Returns:
        (run_logger, log_file_path)
    """
    started = datetime.now()
    label = analysis_id or "sem_id"
    log_file_path = str(Path(output_dir) / f"run_{label}_{started.strftime('%Y%m%d_%H%M%S')}.log")
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    for handler in _run_handlers(log_file_path):
        root_logger.addHandler(handler)

    run_logger = logging.getLogger(RUN_LOGGER_NAME)
    run_logger.info("=" * 70)
    run_logger.info("Store growth analysis")
    run_logger.info("Store: %s", store_name)
    run_logger.info("Analysis ID: %s", label)
    run_logger.info("Output directory: %s", output_dir)
    run_logger.info("Started: %s", started.isoformat(timespec="seconds"))
    run_logger.info("=" * 70)
    return run_logger, log_file_path


class _Tee:
    """Write-through stream that mirrors the terminal into the run log."""

    def __init__(self, primary, mirror):
        self.primary = primary
        self.mirror = mirror

    def write(self, text: str) -> int:
        self.primary.write(text)
        self.mirror.write(text)
        self.mirror.flush()
        return len(text)

    def flush(self) -> None:
        self.primary.flush()
        self.mirror.flush()

    def isatty(self) -> bool:
        return False


@contextmanager
def capture_terminal_output(log_file_path: str):
    """Mirror stdout/stderr (the CLI's Portuguese summary, progress prints) into the run log."""
    original_stdout, original_stderr = sys.stdout, sys.stderr
    with open(log_file_path, "a", encoding="utf-8") as log_file:
        sys.stdout = _Tee(original_stdout, log_file)
        sys.stderr = _Tee(original_stderr, log_file)
        try:
            yield
        finally:
            sys.stdout, sys.stderr = original_stdout, original_stderr


def _cause_chain(exc: BaseException) -> List[BaseException]:
    chain: List[BaseException] = []
    current = exc.__cause__ or getattr(exc, "last_error", None)
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or getattr(current, "last_error", None)
    return chain


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    context: str = "",
    analysis_id: Optional[str] = None,
    **kwargs,
) -> None:
    """Log an exception, its traceback, every underlying cause, and the run context."""
    prefix = f"{context} - " if context else ""
    logger.error("%s%s: %s", prefix, type(exc).__name__, exc)
    for cause in _cause_chain(exc):
        logger.error("  caused by %s: %s", type(cause).__name__, cause)

    stage = getattr(exc, "stage", None)
    attempts = getattr(exc, "attempts", None)
    if stage or attempts:
        logger.error("  stage=%s attempts=%s", stage or "-", attempts if attempts is not None else "-")
    if analysis_id:
        logger.error("  analysis_id=%s", analysis_id)
    if kwargs:
        logger.error("  %s", ", ".join(f"{key}={kwargs[key]}" for key in sorted(kwargs)))

    logger.debug("Traceback:\n%s", "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))


def get_error_info(exc: BaseException, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Structured failure record for a run.

    ``stage`` comes from the exception when it carries one (stage failures),
    otherwise from ``context``; persistence failures rely on the latter.
    """
    context = dict(context or {})
    info: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
        "stage": getattr(exc, "stage", None) or context.get("stage"),
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        "context": context,
    }
    attempts = getattr(exc, "attempts", None)
    if attempts is not None:
        info["attempts"] = attempts
    causes = _cause_chain(exc)
    if causes:
        info["causes"] = [{"type": type(cause).__name__, "message": str(cause)} for cause in causes]
    return info
