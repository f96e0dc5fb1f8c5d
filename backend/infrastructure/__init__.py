"""Infrastructure layer exports."""

from .detection_jobs import DetectionJobRepository, InMemoryDetectionJobRepository
from .inference import (
    HttpInferenceClient,
    InferenceClient,
    NoOpInferenceClient,
    close_inference_client,
    configure_inference_client,
    get_inference_client,
)
from .uploads import InMemoryUploadRegistry, UploadRegistry

__all__ = [
    "DetectionJobRepository",
    "HttpInferenceClient",
    "InMemoryDetectionJobRepository",
    "InMemoryUploadRegistry",
    "InferenceClient",
    "NoOpInferenceClient",
    "UploadRegistry",
    "close_inference_client",
    "configure_inference_client",
    "get_inference_client",
]
