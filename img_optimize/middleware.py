"""HTTP middleware adapter for Starlette/FastAPI applications.

The upload itself (multipart parsing, saving to disk) is handled upstream;
that layer stores the saved file's path on ``request.state.upload_path``.
This adapter processes the file and exposes the manifest to downstream
handlers as ``request.state.processed_image``.

Usage:
    app = FastAPI()
    app.middleware("http")(processing_middleware(ImageProcessor()))
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable

from fastapi import Request, Response

from .processor import ImageProcessor

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


def processing_middleware(
    processor: ImageProcessor,
    delete_original: bool | None = None,
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Build an HTTP middleware that processes saved uploads.

    Errors from processing propagate to the framework's exception
    handlers; deciding between a client and a server fault is theirs.

    Args:
        processor: Processor used for every request
        delete_original: Remove the upload after processing
            (defaults to the processor's delete_original setting)

    Returns:
        Coroutine function usable with app.middleware("http")
    """
    if delete_original is None:
        delete_original = processor.config.delete_original

    async def middleware(request: Request, call_next: CallNext) -> Response:
        upload_path = getattr(request.state, "upload_path", None)
        if not upload_path:
            return await call_next(request)

        upload_path = Path(upload_path)

        # Encoding is CPU bound, keep it off the event loop
        processed = await asyncio.to_thread(processor.process_image, upload_path)
        request.state.processed_image = processed

        if delete_original:
            await asyncio.to_thread(upload_path.unlink)
            logger.debug("Deleted original upload %s", upload_path)

        return await call_next(request)

    return middleware
