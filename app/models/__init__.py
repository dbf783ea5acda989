from .skin_analysis import (
    SkinAnalysisResult, SkinTypeResult, SkinConcern, IngredientRecommendation,
    ProductRecommendation, RoutinePlan, IngredientConflict,
    AnalysisLogMetadata, SkinAnalysisLogModel
)

__all__ = [
    "SkinAnalysisResult", "SkinTypeResult", "SkinConcern", "IngredientRecommendation",
    "ProductRecommendation", "RoutinePlan", "IngredientConflict",
    "AnalysisLogMetadata", "SkinAnalysisLogModel"
]
