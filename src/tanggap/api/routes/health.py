import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from tanggap.api.deps import get_extractor, get_whatsapp
from tanggap.db.database import check_connection
from tanggap.services.extraction import ReportExtractor
from tanggap.telegram.notifier import TelegramNotifier, get_telegram_notifier
from tanggap.whatsapp.factory import WhatsAppService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _safe_check(name: str, check) -> dict[str, Any]:
    try:
        return await check()
    except Exception as e:
        logger.error(f"{name} health check failed: {e}")
        return {"status": "error", "error": str(e)}


@router.get("/health")
async def health(
    extractor: ReportExtractor = Depends(get_extractor),
    whatsapp: WhatsAppService = Depends(get_whatsapp),
    telegram: TelegramNotifier = Depends(get_telegram_notifier),
) -> dict[str, Any]:
    services = {
        "ollama": await _safe_check("Ollama", extractor.health_check),
        "whatsapp": await _safe_check("WhatsApp", whatsapp.health_check),
        "telegram": await _safe_check("Telegram", telegram.health_check),
        "database": {"status": "healthy" if check_connection() else "error"},
    }
    healthy = all(service.get("status") == "healthy" for service in services.values())
    return {
        "success": True,
        "status": "healthy" if healthy else "degraded",
        "services": services,
        "timestamp": datetime.now(UTC).isoformat(),
    }
