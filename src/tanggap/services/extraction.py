"""LLM report extraction with keyword fallback."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from tanggap.services.parser import (
    CRITICAL_FIELDS,
    INTENT_UNKNOWN,
    INTENTS,
    NEED_CATEGORIES,
    PERSON_STATUSES,
    SUMMARY_LENGTH,
    URGENCIES,
    ExtractionResult,
    NeedData,
    PersonData,
)

if TYPE_CHECKING:
    from tanggap.services.llm_client import OllamaClient
    from tanggap.services.parser import RuleBasedExtractor

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when the LLM fails and the keyword fallback is turned off."""


SYSTEM_PROMPT = """Kamu adalah asisten AI untuk sistem tanggap darurat bencana di Indonesia.

Tugasmu adalah mengekstrak informasi terstruktur dari laporan yang dikirim via WhatsApp.

JENIS LAPORAN:
1. KORBAN: Laporan orang meninggal, hilang, atau luka
2. KEBUTUHAN: Laporan kebutuhan bantuan (pangan, air, medis, shelter, evakuasi)

EKSTRAK INFORMASI BERIKUT:
- intent: "korban" atau "kebutuhan" atau "unknown"
- urgency: "critical", "high", "medium", atau "low"
- location: Lokasi (desa/kelurahan/alamat)
- summary: Ringkasan singkat (1-2 kalimat)

Untuk KORBAN, tambahkan:
- persons: Array of { name, status (meninggal/hilang/luka_berat/luka_sedang/luka_ringan/sakit), age?, gender?, condition? }

Untuk KEBUTUHAN, tambahkan:
- needs: Array of { category (pangan/air/medis/shelter/evakuasi/sanitasi/logistik_lain/perlindungan), description, quantity?, peopleAffected? }

- missingFields: Array of field names yang penting tapi belum ada (untuk follow-up question)

ATURAN:
- Jika tidak jelas, set intent: "unknown"
- Jika ada kata: mati, meninggal, tewas, jenazah -> status: "meninggal"
- Jika ada kata: hilang, tidak ditemukan, dicari -> status: "hilang"
- Jika ada kata: luka parah/berat, kritis -> status: "luka_berat" dan urgency: "critical"
- Jika ada kata: darurat, segera, butuh cepat -> urgency: "critical" atau "high"
- Ekstrak nama orang dengan hati-hati (jangan ekstrak nama tempat sebagai nama orang)
- Untuk kebutuhan, kategorikan dengan tepat

OUTPUT FORMAT: JSON murni, tanpa markdown atau teks lain.

CONTOH INPUT: "Ada 3 orang terluka di Dusun Kali RT 02, butuh evakuasi segera. Yang parah ada Pak Budi umur 45 tahun"

CONTOH OUTPUT:
{
  "intent": "korban",
  "urgency": "high",
  "location": "Dusun Kali RT 02",
  "summary": "3 orang terluka di Dusun Kali RT 02, butuh evakuasi segera. Pak Budi (45 tahun) kondisi parah.",
  "persons": [
    {"name": "Pak Budi", "status": "luka_berat", "age": 45, "gender": "L", "condition": "kondisi parah"},
    {"name": "Korban 2 (tidak disebutkan nama)", "status": "luka_sedang"},
    {"name": "Korban 3 (tidak disebutkan nama)", "status": "luka_sedang"}
  ],
  "needs": [
    {"category": "evakuasi", "description": "Evakuasi darurat untuk 3 orang terluka", "peopleAffected": 3}
  ],
  "missingFields": []
}"""

FIELD_QUESTIONS = {
    "location": "Lokasi kejadian (desa/kelurahan/alamat lengkap)",
    "name": "Nama korban",
    "age": "Umur korban",
    "quantity": "Jumlah kebutuhan",
    "peopleAffected": "Jumlah orang yang terdampak",
}

_CODE_FENCE = re.compile(r"```(?:json)?\s*")


def build_prompt(message: str, previous_report: str | None = None) -> str:
    user_prompt = f"PESAN PENGGUNA:\n{message}\n\n"
    if previous_report:
        user_prompt += f"KONTEKS: User ini sebelumnya melaporkan: {previous_report}\n\n"
    user_prompt += "Ekstrak informasi dan berikan output dalam format JSON:"
    return f"{SYSTEM_PROMPT}\n\n{user_prompt}"


def parse_json_response(text: str) -> dict[str, Any]:
    """Parse a model reply, tolerating markdown code fences around the JSON."""
    cleaned = _CODE_FENCE.sub("", text.strip()).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def follow_up_question(missing_fields: list[str]) -> str | None:
    """Question for the first missing field, or None when nothing is missing."""
    if not missing_fields:
        return None
    field_name = missing_fields[0]
    question = FIELD_QUESTIONS.get(field_name, field_name)
    return f"Terima kasih atas laporannya. Untuk melengkapi data, boleh kami tahu: {question}?"


class ReportExtractor:
    """Extract report data with Ollama, falling back to keyword rules on failure."""

    def __init__(
        self,
        *,
        llm: OllamaClient | None = None,
        base_parser: RuleBasedExtractor | None = None,
        fallback_enabled: bool | None = None,
    ) -> None:
        if llm is None:
            from tanggap.services.llm_client import OllamaClient

            llm = OllamaClient()
        if base_parser is None:
            from tanggap.services.parser import RuleBasedExtractor

            base_parser = RuleBasedExtractor()
        if fallback_enabled is None:
            from tanggap.config import settings

            fallback_enabled = settings.ollama_fallback_enabled

        self.llm = llm
        self.base_parser = base_parser
        self.fallback_enabled = fallback_enabled

        if self.llm.is_disabled:
            logger.warning("Ollama is disabled; using rule-based extraction only")

    async def extract(self, message: str, previous_report: str | None = None) -> ExtractionResult:
        if self.llm.is_disabled:
            return self.base_parser.extract(message)

        try:
            response = await self.llm.generate(build_prompt(message, previous_report))
            data = parse_json_response(response.text)
            return self._normalize(message, data)
        except Exception as exc:
            if not self.fallback_enabled:
                raise ExtractionError(f"LLM extraction failed: {exc}") from exc
            logger.warning("LLM extraction failed; falling back to keyword rules: %s", exc)
            return self.base_parser.extract(message)

    def fill_missing_field(
        self, extraction: ExtractionResult, field_name: str, reply: str
    ) -> ExtractionResult:
        """Apply a follow-up reply to the field that was asked about."""
        answer = reply.strip()
        if field_name == "location":
            extraction.location = answer
        if field_name in extraction.missing_fields:
            extraction.missing_fields.remove(field_name)
        return extraction

    async def health_check(self) -> dict[str, Any]:
        return await self.llm.health_check()

    def _normalize(self, message: str, data: dict[str, Any]) -> ExtractionResult:
        intent = self._coerce_choice(data.get("intent"), INTENTS, INTENT_UNKNOWN)
        location = self._coerce_str(data.get("location"))
        missing = [
            str(f) for f in self._coerce_list(data.get("missingFields")) if str(f).strip()
        ]
        # The model sometimes forgets to flag an empty location
        if not location and "location" not in missing:
            missing.insert(0, "location")

        return ExtractionResult(
            intent=intent,
            urgency=self._coerce_choice(data.get("urgency"), URGENCIES, "medium"),
            location=location,
            summary=self._coerce_str(data.get("summary")) or message[:SUMMARY_LENGTH],
            persons=[
                self._coerce_person(p)
                for p in self._coerce_list(data.get("persons"))
                if isinstance(p, dict)
            ],
            needs=[
                self._coerce_need(n)
                for n in self._coerce_list(data.get("needs"))
                if isinstance(n, dict)
            ],
            missing_fields=[f for f in missing if f in CRITICAL_FIELDS or f in FIELD_QUESTIONS],
            fallback=False,
            source="llm",
        )

    def _coerce_person(self, data: dict[str, Any]) -> PersonData:
        return PersonData(
            name=self._coerce_str(data.get("name")) or "Tidak disebutkan",
            status=self._coerce_choice(data.get("status"), PERSON_STATUSES, "luka_sedang"),
            age=self._coerce_int(data.get("age")),
            gender=self._coerce_str(data.get("gender")) or None,
            condition=self._coerce_str(data.get("condition")) or None,
        )

    def _coerce_need(self, data: dict[str, Any]) -> NeedData:
        category = self._coerce_choice(data.get("category"), NEED_CATEGORIES, "logistik_lain")
        quantity = data.get("quantity")
        return NeedData(
            category=category,
            description=self._coerce_str(data.get("description")) or f"Kebutuhan {category}",
            quantity=str(quantity) if quantity not in (None, "") else None,
            people_affected=self._coerce_int(data.get("peopleAffected")),
        )

    def _coerce_choice(self, value: Any, choices: tuple[str, ...], fallback: str) -> str:
        if not isinstance(value, str):
            return fallback
        normalized = value.strip().lower().replace(" ", "_")
        return normalized if normalized in choices else fallback

    def _coerce_str(self, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    def _coerce_int(self, value: Any) -> int | None:
        if value is None or value == "":
            return None
        try:
            return int(round(float(value)))
        except (TypeError, ValueError):
            return None

    def _coerce_list(self, value: Any) -> list:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        raise ValueError("Expected list value")


_extractor: ReportExtractor | None = None


def get_report_extractor() -> ReportExtractor:
    global _extractor
    if _extractor is None:
        _extractor = ReportExtractor()
    return _extractor
