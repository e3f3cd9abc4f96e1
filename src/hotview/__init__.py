"""hotview: hot reload for declarative view files and their stylesheets."""

from hotview.protocols import Reloadable
from hotview.service import HotReloadService
from hotview.settings import HotReloadSettings

__all__ = ["HotReloadService", "HotReloadSettings", "Reloadable"]

__version__ = "0.1.0"
