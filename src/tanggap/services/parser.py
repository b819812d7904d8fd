"""Keyword and regex extraction of disaster reports.

Used when the LLM is disabled, unreachable, or returns something unusable.
The rules are deliberately simple: they favour flagging a report over
dropping it, and leave the location to the follow-up question when it
cannot be found.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any

INTENT_KORBAN = "korban"
INTENT_KEBUTUHAN = "kebutuhan"
INTENT_UNKNOWN = "unknown"

INTENTS = (INTENT_KORBAN, INTENT_KEBUTUHAN, INTENT_UNKNOWN)
URGENCIES = ("critical", "high", "medium", "low")
PERSON_STATUSES = (
    "meninggal",
    "hilang",
    "luka_berat",
    "luka_sedang",
    "luka_ringan",
    "sakit",
)
NEED_CATEGORIES = (
    "pangan",
    "air",
    "medis",
    "shelter",
    "evakuasi",
    "sanitasi",
    "logistik_lain",
    "perlindungan",
)

# Fields worth a follow-up question; anything else is filled in by operators
CRITICAL_FIELDS = ("location",)

SUMMARY_LENGTH = 200
MAX_PLACEHOLDER_PERSONS = 50


@dataclass
class PersonData:
    name: str
    status: str = "luka_sedang"
    age: int | None = None
    gender: str | None = None
    condition: str | None = None


@dataclass
class NeedData:
    category: str
    description: str
    quantity: str | None = None
    people_affected: int | None = None


@dataclass
class ExtractionResult:
    intent: str
    urgency: str = "medium"
    location: str = ""
    summary: str = ""
    persons: list[PersonData] = field(default_factory=list)
    needs: list[NeedData] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)
    fallback: bool = False
    source: str = "rules"

    @property
    def is_unknown(self) -> bool:
        return self.intent == INTENT_UNKNOWN

    @property
    def critical_missing(self) -> list[str]:
        return [f for f in self.missing_fields if f in CRITICAL_FIELDS]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractionResult":
        return cls(
            intent=data.get("intent", INTENT_UNKNOWN),
            urgency=data.get("urgency", "medium"),
            location=data.get("location") or "",
            summary=data.get("summary") or "",
            persons=[PersonData(**p) for p in data.get("persons", [])],
            needs=[NeedData(**n) for n in data.get("needs", [])],
            missing_fields=list(data.get("missing_fields", [])),
            fallback=bool(data.get("fallback", False)),
            source=data.get("source", "rules"),
        )


SHORT_KEYWORD_LENGTH = 3


def mentions(text: str, keywords: list[str]) -> bool:
    """Whether lower-cased text mentions any of the keywords.

    Keywords match inside affixed words ("dimakan", "diobati", "terluka").
    Keywords of three letters or fewer must start a word, so "rs" does not
    fire inside "pers".
    """
    for keyword in keywords:
        if len(keyword) <= SHORT_KEYWORD_LENGTH:
            if re.search(rf"\b{re.escape(keyword)}", text):
                return True
        elif keyword in text:
            return True
    return False


class RuleBasedExtractor:
    KORBAN_KEYWORDS = [
        "mati",
        "meninggal",
        "tewas",
        "hilang",
        "luka",
        "cedera",
        "terluka",
        "sakit",
        "korban",
    ]

    KEBUTUHAN_KEYWORDS = ["butuh", "perlu", "minta", "bantuan", "tolong", "darurat"]

    URGENT_KEYWORDS = ["darurat", "segera", "cepat", "kritis", "parah", "bahaya"]

    CRITICAL_KEYWORDS = ["mati", "meninggal", "tewas", "kritis", "parah sekali", "sekarat"]

    NEED_KEYWORDS = {
        "pangan": ["makan", "makanan", "beras", "pangan", "lapar"],
        "air": ["air", "minum"],
        "medis": ["obat", "medis", "dokter", "puskesmas", "rs", "rumah sakit"],
        "shelter": ["tenda", "tempat tinggal", "shelter", "terpal", "matras"],
        "evakuasi": ["evakuasi", "dievakuasi", "pindah", "selamatkan"],
    }

    # "di Dusun Kali RT 02": capitalised words, optionally followed by RT/RW numbers
    _LOCATION_TOKEN = r"(?:[A-Z][\w.'-]*|(?:RT|RW)\.?\s*\d+(?:/\d+)?|\d+(?:/\d+)?)"
    LOCATION_PATTERN = re.compile(
        rf"\bdi\s+((?:[A-Z][\w.'-]*)(?:\s+{_LOCATION_TOKEN})*)"
    )

    COUNT_PATTERN = re.compile(r"(\d+)\s*(orang|korban|jiwa)", re.IGNORECASE)

    def extract(self, text: str) -> ExtractionResult:
        text_lower = text.lower()

        intent = self._detect_intent(text_lower)
        result = ExtractionResult(
            intent=intent,
            urgency=self._detect_urgency(text_lower),
            summary=text[:SUMMARY_LENGTH],
            missing_fields=["location"],
            fallback=True,
            source="rules",
        )

        location = self.extract_location(text)
        if location:
            result.location = location
            result.missing_fields.remove("location")

        count = self._extract_count(text)
        if intent == INTENT_KORBAN and count:
            result.persons = [
                PersonData(name=f"Korban {i + 1} (tidak disebutkan nama)")
                for i in range(min(count, MAX_PLACEHOLDER_PERSONS))
            ]
        elif intent == INTENT_KEBUTUHAN:
            result.needs = [
                NeedData(
                    category=category,
                    description=f"Kebutuhan {category}",
                    people_affected=count,
                )
                for category in self._detect_need_categories(text_lower)
            ]

        return result

    def extract_location(self, text: str) -> str | None:
        match = self.LOCATION_PATTERN.search(text)
        if not match:
            return None
        return match.group(1).strip()

    def _detect_intent(self, text: str) -> str:
        if mentions(text, self.KORBAN_KEYWORDS):
            return INTENT_KORBAN
        if mentions(text, self.KEBUTUHAN_KEYWORDS):
            return INTENT_KEBUTUHAN
        return INTENT_UNKNOWN

    def _detect_urgency(self, text: str) -> str:
        if mentions(text, self.CRITICAL_KEYWORDS):
            return "critical"
        if mentions(text, self.URGENT_KEYWORDS):
            return "high"
        return "medium"

    def _extract_count(self, text: str) -> int | None:
        match = self.COUNT_PATTERN.search(text)
        if not match:
            return None
        return int(match.group(1)) or None

    def _detect_need_categories(self, text: str) -> list[str]:
        categories = []
        for category, keywords in self.NEED_KEYWORDS.items():
            if mentions(text, keywords):
                categories.append(category)
        return categories
