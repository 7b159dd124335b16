from .analysis import (
    AnalysisCreatedResponse,
    AnalysisListResponse,
    AnalysisResponse,
    AnalysisView,
    VideoUrlResponse,
)

__all__ = [
    "AnalysisCreatedResponse",
    "AnalysisListResponse",
    "AnalysisResponse",
    "AnalysisView",
    "VideoUrlResponse",
]
