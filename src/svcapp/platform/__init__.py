import importlib
import os
from typing import Final

from svcapp.platform.base import PlatformOps, TerminationMode

_mod = {"posix": ".posix", "nt": ".windows"}.get(os.name, ".posix")
platform: Final[PlatformOps] = importlib.import_module(_mod, __name__).platform_impl

__all__ = ["PlatformOps", "TerminationMode", "platform"]
