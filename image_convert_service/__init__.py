"""Image conversion microservice built on FastAPI and Pillow."""

from .processor import BaseProcessor, StatelessAction
from .api import create_app, ServiceConfig
from .config import Settings, settings
from .direct import run_blocking, render_bytes
from .auth import ApiKeyAuth
from .admission import AdmissionController
from .errors import ConversionError, InputError, ResourceExhausted, ServiceError
from .convert_processor import ImageConvertProcessor
from .pipeline import ConversionOptions, ConversionResult, convert_image
from .scheduler import ConversionScheduler

__version__ = "1.0.0"


__all__ = [
    "BaseProcessor",
    "StatelessAction",
    "create_app",
    "ServiceConfig",
    "Settings",
    "settings",
    "run_blocking",
    "render_bytes",
    "ApiKeyAuth",
    "AdmissionController",
    "ConversionError",
    "InputError",
    "ResourceExhausted",
    "ServiceError",
    "ImageConvertProcessor",
    "ConversionOptions",
    "ConversionResult",
    "convert_image",
    "ConversionScheduler",
]
