"""Stateless image conversion processor."""

import logging
from functools import partial
from typing import List

from fastapi import Request, Response

from .admission import AdmissionController
from .config import Settings, settings as default_settings
from .errors import ConversionError, ServiceError
from .pipeline import ConversionOptions, convert_image
from .processor import BaseProcessor, StatelessAction
from .responses import package_results
from .scheduler import ConversionScheduler
from .validation import parse_conversion_request

logger = logging.getLogger(__name__)


class ImageConvertProcessor(BaseProcessor):
    """
    Processor exposing batch image conversion over multipart uploads.

    Args:
        settings: Limits and tuning (defaults to environment settings)
        admission: Memory admission check (defaults to a psutil-backed one)
        scheduler: Job scheduler shared by every request of this processor
    """

    def __init__(
        self,
        settings: Settings | None = None,
        admission: AdmissionController | None = None,
        scheduler: ConversionScheduler | None = None,
    ):
        self.settings = settings or default_settings
        self.admission = admission or AdmissionController(self.settings.max_memory_bytes)
        self.scheduler = scheduler or ConversionScheduler(
            limit=self.settings.max_concurrent_conversions,
            timeout=self.settings.conversion_timeout_seconds,
        )

    @property
    def name(self) -> str:
        return "image-convert"

    def get_stateless_actions(self) -> List[StatelessAction]:
        return [
            StatelessAction(
                name="convert_images",
                path="/convert/images",
                handler=self.handle_convert,
                raw_request=True,
                summary="Convert uploaded images to another format",
                description=(
                    "Accepts up to max_files images as multipart parts with a 'format' field "
                    "and optional 'quality', 'width' and 'height'. Returns the image for a "
                    "single upload and a ZIP archive for several."
                ),
                tags=("convert",),
            ),
        ]

    async def handle_convert(self, request: Request) -> Response:
        """Admit, validate, convert every upload and package the results."""

        logger.info("[POST] %s request received", request.url.path)

        # Before the body is touched.
        self.admission.check()

        async with request.form() as form:
            conversion = await parse_conversion_request(form, self.settings)

        options = ConversionOptions(
            format=conversion.format,
            quality=conversion.quality,
            resize=conversion.resize,
            max_pixels=self.settings.max_pixels,
        )
        jobs = [partial(convert_image, source, options) for source in conversion.files]

        try:
            results = await self.scheduler.run_all(jobs)
        except ServiceError:
            raise
        except Exception as exc:
            raise ConversionError(f"Unexpected failure converting batch: {exc!r}") from exc
        finally:
            for source in conversion.files:
                source.discard()

        logger.info("Converted %d file(s) to %s", len(results), conversion.format)
        return package_results(results, conversion.format, self.settings.zip_compression_level)
