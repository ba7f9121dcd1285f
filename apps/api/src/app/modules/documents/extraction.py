"""
Extraction Client

Thin HTTP client for the external document-understanding API, plus the
normalization of its raw transcript payload into TranscriptData records.

Raw transcript payload (one entry per class year):
    {
        "Lớp 5": {
            "Tên": "Nguyễn Văn A",
            "Điểm": [{"Môn": "Toán", "Mức": "T", "Điểm": 9}, ...],
            "Phẩm chất": {"Chăm chỉ": "Tốt", ...},
            "Năng lực": {"Tự chủ và tự học": "Tốt", ...}
        }
    }
"""

import logging
import math
import unicodedata
from typing import Any

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.modules.documents.errors import InvalidExtractionDataError
from app.modules.documents.schemas import CertificateProcessResult

logger = logging.getLogger(__name__)

UNKNOWN_SCORE = "unk"

# Controlled vocabulary for trait ratings
RATING_CODES = {
    "tốt": "T",
}


def normalize_key(key: str) -> str:
    """Strip Vietnamese accents and all whitespace from a trait name."""
    decomposed = unicodedata.normalize("NFD", key)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    stripped = stripped.replace("đ", "d").replace("Đ", "D")
    return "".join(stripped.split())


def canonicalize_rating(value: Any) -> Any:
    """Map a trait rating to its code ("Tốt" -> "T"); unknown values pass through."""
    if not isinstance(value, str):
        return value
    lookup = unicodedata.normalize("NFC", value).strip().lower()
    return RATING_CODES.get(lookup, value)


def _parse_score(class_name: str, subject: str, raw: Any) -> int | float | None:
    if raw is None or raw == UNKNOWN_SCORE:
        return None
    if isinstance(raw, bool):
        raise InvalidExtractionDataError(f"Invalid score for {subject} in {class_name}: {raw!r}")
    if isinstance(raw, int | float):
        return raw
    try:
        value = float(str(raw).strip().replace(",", "."))
    except ValueError as e:
        raise InvalidExtractionDataError(
            f"Invalid score for {subject} in {class_name}: {raw!r}"
        ) from e
    if math.isnan(value) or math.isinf(value):
        raise InvalidExtractionDataError(f"Invalid score for {subject} in {class_name}: {raw!r}")
    return int(value) if value.is_integer() else value


def _normalize_ratings(class_name: str, ratings: dict[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for name, rating in ratings.items():
        key = normalize_key(name)
        if key in normalized:
            logger.warning(f"Trait names collide after normalization in {class_name}: {name!r} -> {key!r}")
        normalized[key] = canonicalize_rating(rating)
    return normalized


def parse_extract_data(raw: Any) -> dict[str, dict[str, Any]]:
    """
    Normalize a raw transcript payload.

    Returns:
        Class name -> {"ten", "monHoc", ["phamChat"], ["nangLuc"]}

    Raises:
        InvalidExtractionDataError: If a class record lacks "Tên" or "Điểm",
            or a score is neither a number nor "unk"
    """
    if not isinstance(raw, dict):
        raise InvalidExtractionDataError("Invalid data structure: expected an object of class records")

    result: dict[str, dict[str, Any]] = {}
    for class_name, record in raw.items():
        if not isinstance(record, dict) or "Tên" not in record or "Điểm" not in record:
            raise InvalidExtractionDataError(f"Invalid data structure for {class_name}")

        subjects = record["Điểm"]
        if not isinstance(subjects, list):
            raise InvalidExtractionDataError(f"Invalid data structure for {class_name}")

        mon_hoc = []
        for entry in subjects:
            if not isinstance(entry, dict):
                raise InvalidExtractionDataError(f"Invalid data structure for {class_name}")
            subject = entry.get("Môn")
            mon_hoc.append(
                {
                    "mon": subject,
                    "muc": entry.get("Mức"),
                    "diem": _parse_score(class_name, str(subject), entry.get("Điểm")),
                }
            )

        normalized: dict[str, Any] = {"ten": record["Tên"], "monHoc": mon_hoc}
        if isinstance(record.get("Phẩm chất"), dict):
            normalized["phamChat"] = _normalize_ratings(class_name, record["Phẩm chất"])
        if isinstance(record.get("Năng lực"), dict):
            normalized["nangLuc"] = _normalize_ratings(class_name, record["Năng lực"])

        result[class_name] = normalized

    return result


class ExtractionClient:
    """
    Client for the document-understanding API.

    Every call is bounded by ``timeout``. Transport errors and non-2xx
    responses surface as httpx exceptions for the caller's retry policy.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.extraction_api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.extraction_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=min(10.0, self.timeout)),
            transport=self._transport,
        )

    async def extract_transcript(self, content: bytes, file_name: str) -> dict[str, dict[str, Any]]:
        """Upload a transcript PDF and return its normalized class records."""
        files = {"file": (file_name, content, "application/pdf")}
        async with self._client() as client:
            response = await client.post("/upload-pdf/", files=files)
            response.raise_for_status()
            raw = response.json()

        logger.debug(f"Transcript extraction returned {len(raw) if isinstance(raw, dict) else 0} classes")
        return parse_extract_data(raw)

    async def extract_certificate(
        self,
        content: bytes,
        file_name: str,
        mime_type: str,
        full_name: str,
    ) -> CertificateProcessResult:
        """Upload a certificate image and check it against the student's name."""
        files = {"file": (file_name, content, mime_type)}
        async with self._client() as client:
            response = await client.post("/certificate", params={"name": full_name}, files=files)
            response.raise_for_status()
            raw = response.json()

        if not isinstance(raw, dict):
            raise InvalidExtractionDataError("Invalid certificate result: expected an object")
        try:
            return CertificateProcessResult.model_validate(raw)
        except ValidationError as e:
            raise InvalidExtractionDataError(f"Invalid certificate result: {e}") from e
