"""
Security gates: field authorization, rate limiting, sanitization, anomaly detection.
"""

from .anomaly import AnomalyDetector
from .field_authorization import FieldAuthorizationResolver
from .rate_limiter import InMemoryCounterStore, RateLimiter
from .sanitizer import InputSanitizer, SanitizedValue, ThreatType

__all__ = [
    "AnomalyDetector",
    "FieldAuthorizationResolver",
    "InMemoryCounterStore",
    "RateLimiter",
    "InputSanitizer",
    "SanitizedValue",
    "ThreatType",
]
