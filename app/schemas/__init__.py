from .skin_analysis import (
    AnalysisPreferences, AnalysisRequest, ApiResponse, HealthStatus
)

__all__ = [
    "AnalysisPreferences", "AnalysisRequest", "ApiResponse", "HealthStatus"
]
