import logging
import sys

from taskmanager import config

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = None) -> None:
    """Install one stream handler on the root logger; safe to call twice."""
    root = logging.getLogger()
    root.setLevel((level or config.LOG_LEVEL).upper())
    if not any(h.get_name() == "taskmanager" for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name("taskmanager")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


def install_excepthook() -> None:
    """Log uncaught exceptions outside any request, then let the process exit."""
    previous = sys.excepthook

    def _hook(exc_type, exc, tb):
        if not issubclass(exc_type, KeyboardInterrupt):
            logging.getLogger("taskmanager").critical(
                "uncaught exception, shutting down", exc_info=(exc_type, exc, tb)
            )
        previous(exc_type, exc, tb)

    sys.excepthook = _hook
