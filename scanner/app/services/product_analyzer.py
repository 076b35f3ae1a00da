"""Halal analysis of Japanese product labels.

A scan runs OCR on the label photo and hands the extracted text to Gemini
with instructions to look the product up on LOHACO and report its price,
ingredients and whether it contains pork.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

from scanner.app.core.logging import get_logger
from scanner.app.exceptions import AnalysisError, NoTextFoundError
from scanner.app.providers.gemini import GeminiProvider
from scanner.app.providers.ocr_space import OCRSpaceProvider

logger = get_logger(__name__)

PRODUCT_SOURCE_URL = "https://lohaco.yahoo.co.jp/"

# Ingredient markers that make a product non-halal
PORK_MARKERS = (
    "豚",
    "豚肉",
    "豚脂",
    "豚油",
    "ポークエキス",
    "ラード",
    "豚肉エキス",
    "ポークブイヨン",
)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def build_analysis_prompt(product_text: str, jpy_to_idr_rate: float = 105.0) -> str:
    """Build the Gemini prompt for one OCR result."""
    markers = "\n".join(f"  - {marker}" for marker in PORK_MARKERS)
    return f"""
Berdasarkan teks produk Jepang berikut: "{product_text}"

Tugas Anda:
1. Identifikasi nama produk yang tepat
2. Cari dan verifikasi informasi produk ini langsung dari website resmi {PRODUCT_SOURCE_URL}
3. Sajikan hasil dalam format JSON berikut:

{{
    "product_name": "nama produk yang jelas sesuai website resmi {PRODUCT_SOURCE_URL}",
    "price_yen": "harga tanpa tambahan teks apapun, contoh \\"1080 JPY\\". Tidak boleh menebak harga",
    "price_idr": "konversi ke rupiah (gunakan rate 1 JPY = {jpy_to_idr_rate:g} IDR)",
    "ingredients": "SALIN LENGKAP teks 原材料名 dari 商品仕様/スペック produk asli",
    "contains_pork": "true/false, hanya ditentukan berdasarkan instruksi khusus di bawah",
    "pork_analysis": "sebutkan bahan dengan kanji aslinya jika ditemukan",
    "halal_status": "'tidak halal' jika mengandung babi atau turunannya, 'Halal' jika tidak",
    "additional_info": "tambahan dari halaman produk asli jika ada"
}}

INSTRUKSI KHUSUS & WAJIB:
- Ambil data langsung dari halaman resmi {PRODUCT_SOURCE_URL}. Jangan membuat asumsi.
- Jika salah satu kata berikut muncul di bagian 原材料名, maka contains_pork = true tanpa pengecualian:
{markers}
- Jika salah satu di atas muncul: "contains_pork": true, "pork_analysis" menyebutkan bahannya
  secara eksplisit, dan "halal_status": "tidak halal".
- Hindari spekulasi seperti "mungkin" atau "tergantung merek".
"""


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the outermost JSON object embedded in a model answer.

    Raises:
        AnalysisError: If the text has no parseable JSON object
    """
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        raise AnalysisError("Invalid response format from Gemini")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AnalysisError(f"Invalid JSON in Gemini response: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise AnalysisError("Invalid response format from Gemini")
    return parsed


def find_pork_markers(text: str) -> list[str]:
    """Return the pork markers that literally appear in text."""
    return [marker for marker in PORK_MARKERS if marker in text]


@dataclass
class ScanResult:
    """OCR text and the model's analysis of it."""

    ocr_text: str
    analysis: Dict[str, Any]
    # Pork markers found verbatim in the OCR text, independent of the model
    detected_pork_markers: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ocr_text": self.ocr_text,
            "analysis": self.analysis,
            "detected_pork_markers": self.detected_pork_markers,
        }


class ProductAnalyzer:
    """Runs OCR followed by the Gemini halal analysis."""

    def __init__(
        self,
        ocr: OCRSpaceProvider,
        gemini: GeminiProvider,
        jpy_to_idr_rate: float = 105.0,
    ):
        self.ocr = ocr
        self.gemini = gemini
        self.jpy_to_idr_rate = jpy_to_idr_rate

    async def extract_text(self, image: str) -> str:
        """OCR only; raises OCRError on upstream failure."""
        text = await self.ocr.extract_text(image)
        logger.info(f"OCR finished, text length: {len(text)}")
        return text

    async def analyze(self, image: str) -> ScanResult:
        """Full scan of a product label.

        Raises:
            OCRError: OCR upstream failure
            NoTextFoundError: OCR found no text
            AnalysisError: Gemini failure or unparseable answer
        """
        text = await self.extract_text(image)
        if not text.strip():
            raise NoTextFoundError()

        answer = await self.gemini.generate(
            build_analysis_prompt(text, self.jpy_to_idr_rate)
        )
        analysis = extract_json_object(answer)

        markers = find_pork_markers(text)
        if markers:
            logger.debug(f"OCR text contains pork markers: {', '.join(markers)}")
        return ScanResult(
            ocr_text=text, analysis=analysis, detected_pork_markers=markers
        )
