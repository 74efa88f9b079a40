"""Classifier package — prompt, backends and the failover gateway."""

from linkray.classifier.backends import (
    ChatModelBackend,
    ClassifierBackend,
    ClassifierConfig,
    build_backends,
)
from linkray.classifier.gateway import ClassifierGateway, parse_reply, sanitize
from linkray.classifier.models import AnalysisResult, BackendFailure, Classification

__all__ = [
    "ClassifierGateway",
    "ClassifierBackend",
    "ChatModelBackend",
    "ClassifierConfig",
    "build_backends",
    "parse_reply",
    "sanitize",
    "AnalysisResult",
    "BackendFailure",
    "Classification",
]
