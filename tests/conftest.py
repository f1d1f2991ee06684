from __future__ import annotations

import pytest


@pytest.fixture(scope="session")
def qapp():
    """A Qt core application so timers can be created."""
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
