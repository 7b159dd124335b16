from typing import Any, Dict, Protocol


class VideoProcessor(Protocol):
    async def process(self, video_bytes: bytes, analysis_id: str) -> Dict[str, Any]:
        ...
