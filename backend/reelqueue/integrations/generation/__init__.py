"""
Generation provider integration.

HTTP access to the third-party services that render talking-head video,
speech, images and transcripts.
"""

from reelqueue.integrations.generation.client import GenerationProviderClient
from reelqueue.integrations.generation.handlers import HttpGenerationHandler
from reelqueue.integrations.generation.exceptions import (
    GenerationBackendError,
    GenerationAuthenticationError,
    GenerationRateLimitError,
    GenerationConnectionError,
    GenerationTimeoutError,
    UnknownGenerationKindError,
)

__all__ = [
    "GenerationProviderClient",
    "HttpGenerationHandler",
    "GenerationBackendError",
    "GenerationAuthenticationError",
    "GenerationRateLimitError",
    "GenerationConnectionError",
    "GenerationTimeoutError",
    "UnknownGenerationKindError",
]
