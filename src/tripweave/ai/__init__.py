"""AI generation pipelines for tripweave.

client.py is the only module that imports google-generativeai. Every
pipeline receives an ``AIClient | None`` and falls back to local generation
when the client is missing, disabled, or a call fails.

Exports:
    - AIClient / get_client: Gemini client and factory
    - GenerationPipeline: Shared assemble -> invoke -> parse/fallback machine
    - PersonDetectionPipeline, AnonymizationPipeline: Privacy
    - PhotoBookPipeline, VideoPipeline, StoryPipeline, VisionPipeline
    - FacePipeline: Face detection, comparison and group dynamics
    - BatchAnalyzer: Bounded concurrent runner for per-photo analysis
    - Exception hierarchy for typed error handling
"""

from tripweave.ai.batch import BatchAnalyzer, BatchItemResult, BatchProgress
from tripweave.ai.client import (
    # Main client
    AIClient,
    get_client,
    # Response models
    AIResponse,
    StructuredAIResponse,
    # Exceptions
    AIClientError,
    AIUnavailableError,
    AIAuthenticationError,
    AIRateLimitError,
    AIQuotaExceededError,
    AIServerError,
    AIBadRequestError,
    AITimeoutError,
    ModelNotAvailableError,
    ContentBlockedError,
)
from tripweave.ai.faces import FaceAnalysis, FacePipeline
from tripweave.ai.images import ImageLoader
from tripweave.ai.photo_book import PhotoBook, PhotoBookPipeline, PhotoBookRequest
from tripweave.ai.pipeline import GenerationPipeline, PipelineState, PromptRequest
from tripweave.ai.privacy import (
    AnonymizationPipeline,
    AnonymizationSettings,
    PersonDetectionPipeline,
    SharingContext,
)
from tripweave.ai.story import StoryPipeline, StoryRequest, TravelStory
from tripweave.ai.video import GeneratedVideo, VideoPipeline, VideoRequest
from tripweave.ai.vision import VisionAnalysis, VisionPipeline

__all__ = [
    # Client
    "AIClient",
    "get_client",
    "AIResponse",
    "StructuredAIResponse",
    "ImageLoader",
    # Pipelines
    "GenerationPipeline",
    "PipelineState",
    "PromptRequest",
    "PersonDetectionPipeline",
    "AnonymizationPipeline",
    "AnonymizationSettings",
    "SharingContext",
    "PhotoBookPipeline",
    "PhotoBookRequest",
    "PhotoBook",
    "VideoPipeline",
    "VideoRequest",
    "GeneratedVideo",
    "StoryPipeline",
    "StoryRequest",
    "TravelStory",
    "VisionPipeline",
    "VisionAnalysis",
    "FacePipeline",
    "FaceAnalysis",
    "BatchAnalyzer",
    "BatchItemResult",
    "BatchProgress",
    # Exceptions
    "AIClientError",
    "AIUnavailableError",
    "AIAuthenticationError",
    "AIRateLimitError",
    "AIQuotaExceededError",
    "AIServerError",
    "AIBadRequestError",
    "AITimeoutError",
    "ModelNotAvailableError",
    "ContentBlockedError",
]
