import logging
import sys

from PySide6.QtCore import QCoreApplication

APP_NAME = "Tablet Mapper"
APP_VERSION = "0.1.0"


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format="%(levelname)s %(name)s - %(message)s")


def create_application(argv: list[str] | None = None) -> QCoreApplication:
    """Create the Qt core application that drives capture and decode timers."""
    configure_logging()
    app = QCoreApplication.instance() or QCoreApplication(argv if argv is not None else sys.argv)
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    return app
