"""
Script para ejecutar el servidor en modo desarrollo (con reload).
"""
import sys
from pathlib import Path

import uvicorn

_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

from geostats.core.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        app_dir=str(_API_ROOT),
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
