"""FastAPI entrypoint for the image conversion service."""

import uvicorn

from .api import ServiceConfig, create_app
from .config import settings
from .convert_processor import ImageConvertProcessor

config = ServiceConfig(
    description="Converts uploaded images between formats, one file or a ZIP batch.",
    version=settings.api_version,
)

app = create_app(ImageConvertProcessor(settings), config, settings)

if __name__ == "__main__":
    uvicorn.run(
        "image_convert_service.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=False,
        log_level="info",
    )
