"""
Common utilities and shared modules.
"""

from .genai_client import (
    GenerationClient,
    GenerationServiceError,
    GeminiClient,
    AnthropicClient,
    create_generation_client,
)
from .rate_limiter import TokenRateLimiter, RateBudget
from .retry import RetryController, TransientServiceError, is_retryable_error

__all__ = [
    # Generation service
    "GenerationClient",
    "GenerationServiceError",
    "GeminiClient",
    "AnthropicClient",
    "create_generation_client",
    # Rate limiting / retries
    "TokenRateLimiter",
    "RateBudget",
    "RetryController",
    "TransientServiceError",
    "is_retryable_error",
]
