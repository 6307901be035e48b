"""Core export and summary functionality.

Layers, leaf-first:

1. **Configuration** (config.py): Pydantic Settings loaded from ``SCADSRV_*``
   environment variables.
2. **Formats and options** (formats.py, options.py): the export format table
   and the translation of option bags into openscad arguments.
3. **Re-encoding** (image_convert.py): PNG to WebP/AVIF with Pillow.
4. **Execution** (runner.py): staging areas and the deadline-bounded openscad
   subprocess.
5. **Orchestration** (openscad.py): :class:`OpenSCADService`, combining the
   layers above into ``export`` and ``summary``.
"""

from scadserver.core.config import ScadServerConfig, config
from scadserver.core.errors import ScadServerError
from scadserver.core.formats import ExportFormat
from scadserver.core.openscad import OpenSCADService

__all__ = [
    "ExportFormat",
    "OpenSCADService",
    "ScadServerConfig",
    "ScadServerError",
    "config",
]
