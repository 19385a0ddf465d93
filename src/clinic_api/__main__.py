"""
Entry point for running the API as a module: ``python -m src.clinic_api``.
"""

import uvicorn

from src.clinic_api.config import settings
from src.clinic_api.logging_config import setup_logging

if __name__ == "__main__":
    setup_logging(settings.log_level)
    uvicorn.run("src.clinic_api.main:app", host=settings.host, port=settings.port, reload=settings.is_development)
