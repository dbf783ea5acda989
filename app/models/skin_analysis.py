from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from datetime import datetime

from app.utils.date_utils import get_utc_now

SKIN_TYPES = [
    "Oily",
    "Dry",
    "Combination",
    "Normal",
    "Acne-prone",
    "Sensitive-leaning",
    "Oily / Acne-prone",
    "Combination / Acne-prone",
]

SEVERITIES = ["Mild", "Moderate", "Severe"]

PRODUCT_CATEGORIES = [
    "Cleanser",
    "Toner",
    "Essence",
    "Serum",
    "Moisturizer",
    "Sunscreen",
    "Spot treatment",
    "Mask",
]

# Documented shape of a model answer. Values from the provider are passed
# through as-is, so enum-like fields are plain strings here.

class SkinTypeResult(BaseModel):
    type: str
    confidence: float  # 0..1, not clamped

class SkinConcern(BaseModel):
    name: str
    severity: str  # Mild | Moderate | Severe
    confidence: float  # 0..1, not clamped
    evidence: Optional[str] = None

class IngredientRecommendation(BaseModel):
    ingredient: str
    reason: str
    cautions: List[str] = []

class ProductRecommendation(BaseModel):
    name: str
    brand: Optional[str] = None
    category: str  # one of PRODUCT_CATEGORIES
    why: Optional[str] = None
    howToUse: Optional[str] = None
    cautions: List[str] = []
    tags: List[str] = []

class RoutinePlan(BaseModel):
    AM: List[str] = []
    PM: List[str] = []
    weekly: Optional[List[str]] = None

class IngredientConflict(BaseModel):
    ingredients: List[str] = []
    warning: str

class SkinAnalysisResult(BaseModel):
    """ParsedAnalysis returned to the caller"""
    model_config = ConfigDict(extra="allow")

    skinType: SkinTypeResult
    concerns: List[SkinConcern] = []
    ingredients: List[IngredientRecommendation] = []
    products: List[ProductRecommendation] = []
    routine: RoutinePlan
    conflicts: List[IngredientConflict] = []
    disclaimers: List[str] = []
    timestamp: str  # ISO-8601

class AnalysisLogMetadata(BaseModel):
    model: str
    vision_model: Optional[str] = None
    embedding_model: Optional[str] = None
    prompt_version: str
    temperature: float
    processing_time_ms: int
    goals: str = ""
    age: Optional[int] = None
    value_focus: Optional[str] = None
    fragrance_free: bool = False
    pregnancy_safe: bool = False
    sensitive_mode: bool = False
    completion_calls: int = 1
    repair: Optional[str] = None  # json/richness
    rich_enough: bool = True

class SkinAnalysisLogModel(BaseModel):
    """Document written to the skin_analysis_logs collection"""
    image_embedding: List[float] = []
    analysis: Dict[str, Any]
    retrieved_context: List[str] = []
    metadata: AnalysisLogMetadata
    created_at: datetime = Field(default_factory=get_utc_now)
