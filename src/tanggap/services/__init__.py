"""Tanggap services: extraction, conversation state, reports and notifications.

Imports are lazy so that importing a single service does not pull in the
database engine or the messaging clients.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS: dict[str, tuple[str, str]] = {
    # Extraction
    "ExtractionError": ("tanggap.services.extraction", "ExtractionError"),
    "ExtractionResult": ("tanggap.services.parser", "ExtractionResult"),
    "ReportExtractor": ("tanggap.services.extraction", "ReportExtractor"),
    "RuleBasedExtractor": ("tanggap.services.parser", "RuleBasedExtractor"),
    "follow_up_question": ("tanggap.services.extraction", "follow_up_question"),
    "get_report_extractor": ("tanggap.services.extraction", "get_report_extractor"),
    # LLM
    "OllamaClient": ("tanggap.services.llm_client", "OllamaClient"),
    "OllamaError": ("tanggap.services.llm_client", "OllamaError"),
    # Chat state
    "ChatStateStore": ("tanggap.services.chat_state", "ChatStateStore"),
    "Conversation": ("tanggap.services.chat_state", "Conversation"),
    # Processor
    "MessageProcessor": ("tanggap.services.processor", "MessageProcessor"),
    "ProcessResult": ("tanggap.services.processor", "ProcessResult"),
    # Reports
    "ReportError": ("tanggap.services.reports", "ReportError"),
    "ReportFilters": ("tanggap.services.reports", "ReportFilters"),
    "create_report": ("tanggap.services.reports", "create_report"),
    "update_status": ("tanggap.services.reports", "update_status"),
    # Users
    "get_or_create_user": ("tanggap.services.users", "get_or_create_user"),
    "is_trusted": ("tanggap.services.users", "is_trusted"),
    # Media
    "MediaStore": ("tanggap.services.media", "MediaStore"),
    "get_media_store": ("tanggap.services.media", "get_media_store"),
    # Notifications
    "NotificationService": ("tanggap.services.notifications", "NotificationService"),
    "get_notification_service": (
        "tanggap.services.notifications",
        "get_notification_service",
    ),
}

__all__ = list(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = _EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(list(globals().keys()) + list(_EXPORTS.keys()))
