"""
OCR collaborator — receipt image bytes → text (Tesseract).

Recognition is CPU-bound, so it runs in a bounded thread pool under a
deadline; the event loop is never blocked by it.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO

import pytesseract
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from expense_ai.config import Settings
from expense_ai.errors import BadInput, ServiceUnavailable
from expense_ai.services.resilience import call_with_retries

logger = logging.getLogger(__name__)

OCR_BACKOFF_SECONDS = 0.2


def preprocess(image: Image.Image, max_width: int) -> Image.Image:
    """Resize (never enlarge), grayscale, normalise contrast, sharpen."""
    if image.width > max_width:
        height = max(1, round(image.height * max_width / image.width))
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)
    image = ImageOps.grayscale(image)
    image = ImageOps.autocontrast(image)
    return image.filter(ImageFilter.SHARPEN)


class OCRService:
    def __init__(
        self,
        executor: ThreadPoolExecutor,
        *,
        enabled: bool = True,
        timeout: float = 60.0,
        attempts: int = 2,
        max_width: int = 1200,
        tesseract_cmd: str = "",
    ):
        self._executor = executor
        self.enabled = enabled
        self.timeout = timeout
        self.attempts = attempts
        self.max_width = max_width
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @classmethod
    def from_settings(cls, settings: Settings) -> "OCRService":
        return cls(
            ThreadPoolExecutor(max_workers=settings.OCR_WORKERS, thread_name_prefix="ocr"),
            enabled=settings.OCR_ENABLED,
            timeout=settings.OCR_TIMEOUT_SECONDS,
            attempts=settings.OCR_MAX_ATTEMPTS,
            max_width=settings.OCR_MAX_WIDTH,
            tesseract_cmd=settings.TESSERACT_CMD,
        )

    def _recognize(self, image_bytes: bytes) -> str:
        with Image.open(BytesIO(image_bytes)) as image:
            image.load()
            try:
                processed = preprocess(image, self.max_width)
            except (OSError, ValueError) as exc:
                logger.warning("Image preprocessing failed, using original: %s", exc)
                processed = image
            return pytesseract.image_to_string(processed)

    async def extract_text(self, image_bytes: bytes) -> str:
        if not self.enabled:
            raise ServiceUnavailable("OCR is not available")
        if not image_bytes:
            raise BadInput("Image data is required")

        loop = asyncio.get_running_loop()
        try:
            text = await call_with_retries(
                lambda: loop.run_in_executor(self._executor, self._recognize, image_bytes),
                label="OCR",
                attempts=self.attempts,
                timeout=self.timeout,
                backoff=OCR_BACKOFF_SECONDS,
                backoff_max=OCR_BACKOFF_SECONDS * 4,
                retry_on=(pytesseract.TesseractError,),
            )
        except UnidentifiedImageError as exc:
            raise BadInput("Uploaded data is not a readable image") from exc
        except (
            pytesseract.TesseractError,
            pytesseract.TesseractNotFoundError,
            asyncio.TimeoutError,
            OSError,
        ) as exc:
            logger.error("OCR failed: %s", exc)
            raise ServiceUnavailable("Failed to process receipt image") from exc

        logger.info("OCR extracted %d characters", len(text))
        return text

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
