import logging
from typing import Any, Dict

import aiohttp

from ...config import settings
from ...exceptions import ProcessingFault
from ...application.ports.video_processor import VideoProcessor

logger = logging.getLogger(__name__)


class HttpVideoProcessor(VideoProcessor):
    """Posts the video to the external pose-analysis service and returns its JSON body."""

    def __init__(self, url: str = None, timeout_seconds: int = None) -> None:
        self.url = url or settings.PROCESSING_SERVICE_URL
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.PROCESSING_TIMEOUT_SECONDS)

    async def process(self, video_bytes: bytes, analysis_id: str) -> Dict[str, Any]:
        form = aiohttp.FormData()
        form.add_field("video", video_bytes, filename="video.mp4", content_type="video/mp4")
        form.add_field("analysis_id", analysis_id)

        logger.info(f"Sending analysis {analysis_id} ({len(video_bytes)} bytes) to {self.url}")
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(self.url, data=form) as response:
                if response.status != 200:
                    body = await response.text()
                    raise ProcessingFault(f"Processing service returned {response.status}: {body[:200]}")
                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    raise ProcessingFault(f"Processing service returned invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ProcessingFault("Processing service returned a non-object result")
        return payload
