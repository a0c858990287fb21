
__version__ = "0.1.0"

from .core import *
from .core import __all__ as _core_all
from .config import Config, setup_logging
from .main import initialize

__all__ = _core_all + ["Config", "initialize", "setup_logging"]
