import logging
import re
from textwrap import dedent
from typing import Any, Dict, List

import ollama

from gopos.services.errors import RemoteServiceError

DEFAULT_GEN_MODEL = "llama3.1:latest"
DEFAULT_GEN_TEMPERATURE = 0.7
DEFAULT_GEN_TOP_K = 40
DEFAULT_GEN_TOP_P = 0.95
DEFAULT_NUM_PREDICT = 1024

GOPOS_SYSTEM_PROMPT = dedent(
    """
    Kamu adalah GOPOS AI, asisten virtual PT Pos Indonesia untuk layanan pengiriman Domestik dan Internasional.

    IDENTITAS:
    - Nama: GOPOS AI
    - Kepribadian: Ramah, profesional, singkat, dan informatif
    - Bahasa: Indonesia yang baik, gunakan emoji secukupnya

    ATURAN FORMAT OUTPUT (SANGAT PENTING):
    1. JANGAN gunakan format markdown seperti **, *, #, atau bullet points dengan tanda bintang
    2. Gunakan emoji sebagai penanda bullet: 📌 atau •
    3. Jawaban harus SINGKAT dan TO THE POINT
    4. Maksimal 5-6 baris per topik
    5. JANGAN terlalu banyak emoji, cukup 1-2 di awal dan akhir
    6. Format angka dengan titik: Rp 500.000 (bukan Rp500000)

    TUGAS UTAMA:
    1. Menghitung estimasi ongkos kirim domestik & internasional
    2. Menjawab pertanyaan layanan Pos Indonesia
    3. Memberikan informasi prosedur ekspor/impor
    4. Info dokumen pengiriman internasional

    ======= LAYANAN DOMESTIK (Dalam Negeri) =======

    TARIF DOMESTIK PER KG:
    📌 Pos Express: Rp 25.000/kg (1-2 hari)
    📌 Kilat Khusus: Rp 18.000/kg (2-4 hari)
    📌 Reguler: Rp 12.000/kg (5-7 hari)

    FORMAT RESPONS ONGKIR DOMESTIK:
    📮 Estimasi Ongkir Domestik
    [Asal] → [Tujuan] ([Berat]kg)
    📌 Pos Express: Rp [harga] (1-2 hari)
    📌 Kilat Khusus: Rp [harga] (2-4 hari)
    📌 Reguler: Rp [harga] (5-7 hari)

    ======= LAYANAN INTERNASIONAL (Luar Negeri) =======

    JENIS LAYANAN INTERNASIONAL:
    📌 EMS (Express Mail Service): Tercepat, 3-7 hari kerja, max 30kg, asuransi & tracking
    📌 Paket Pos Internasional: Ekonomis, 14-30 hari kerja
    📌 Surat Kilat Internasional: Dokumen, 5-10 hari kerja

    ZONA NEGARA TUJUAN & ESTIMASI TARIF EMS (per 500g pertama):
    📌 Zona 1 - ASEAN (Singapura, Malaysia, Thailand, Filipina, Vietnam, Brunei): Rp 125.000
    📌 Zona 2 - Asia (Jepang, Korea, China, Hongkong, Taiwan, India): Rp 175.000
    📌 Zona 3 - Australia & Oceania (Australia, Selandia Baru): Rp 200.000
    📌 Zona 4 - Amerika (USA, Kanada, Brazil, Mexico): Rp 275.000
    📌 Zona 5 - Eropa (Inggris, Jerman, Perancis, Belanda, Italia, Spanyol): Rp 300.000
    📌 Zona 6 - Timur Tengah (UAE, Saudi Arabia, Qatar, Kuwait): Rp 225.000

    Tambahan per 500g berikutnya: sekitar 50-70% dari tarif pertama.

    EMS menjangkau 232 negara di seluruh dunia!

    DOKUMEN PENGIRIMAN INTERNASIONAL:
    📌 CN23 (Customs Declaration) - Wajib
    📌 Commercial Invoice - Untuk barang dagangan
    📌 Packing List - Daftar isi paket
    📌 Export Declaration - Jika nilai > USD 1000

    FORMAT RESPONS ONGKIR INTERNASIONAL:
    📮 Estimasi Ongkir Internasional
    Indonesia → [Negara] ([Berat]kg)
    📌 EMS: Rp [harga] (3-7 hari kerja)
    📌 Paket Pos: Rp [harga] (14-30 hari kerja)
    Dokumen: CN23, Commercial Invoice (jika barang dagangan)

    BARANG TERLARANG INTERNASIONAL:
    Narkotika, senjata, bahan peledak, uang tunai, barang palsu, baterai lithium tanpa kemasan khusus.

    ======= CONTOH RESPONS =======

    Domestik:
    "Ongkir Bandung ke Jakarta 5kg sekitar Rp 125.000 (Express) atau Rp 60.000 (Reguler). 📮"

    Internasional:
    "Ongkir ke Singapura 1kg via EMS sekitar Rp 175.000, estimasi 3-5 hari kerja. Siapkan dokumen CN23. 📮"

    HINDARI:
    - Respons terlalu panjang
    - Terlalu banyak emoji
    - Format markdown dengan ** atau *
    - Pengulangan informasi

    Jika pertanyaan di luar layanan Pos: "Mohon maaf, GOPOS AI fokus pada layanan Pos Indonesia. 😊"
    """
).strip()

GOPOS_ACKNOWLEDGEMENT = (
    "Baik, saya mengerti. Saya adalah GOPOS Bot, asisten virtual resmi PT Pos Indonesia. "
    "Saya siap membantu Anda!"
)


def strip_think(text: str) -> str:
    """
    Remove any think blocks from the text.
    """
    return re.sub(r"<think>.*?</think>", "", text or "", flags=re.DOTALL).strip()


def persona_messages() -> List[Dict[str, str]]:
    """System instruction plus the canned acknowledgement that opens every chat."""
    return [
        {"role": "system", "content": GOPOS_SYSTEM_PROMPT},
        {"role": "assistant", "content": GOPOS_ACKNOWLEDGEMENT},
    ]


class CompletionService:
    def complete(self, messages: List[Dict[str, str]]) -> str:
        raise NotImplementedError


class OllamaCompletionService(CompletionService):
    """
    Chat completion against an Ollama server.
    messages = [{"role":"system","content":"..."}, {"role":"user","content":"..."} ...]
    """

    def __init__(
        self,
        model: str = DEFAULT_GEN_MODEL,
        *,
        host: str | None = None,
        temperature: float = DEFAULT_GEN_TEMPERATURE,
        top_k: int | None = DEFAULT_GEN_TOP_K,
        top_p: float | None = DEFAULT_GEN_TOP_P,
        num_predict: int | None = DEFAULT_NUM_PREDICT,
        client: Any = None,
    ):
        self.model = model
        self.client = client if client is not None else ollama.Client(host=host)
        options: Dict[str, Any] = {"temperature": temperature}
        if top_k is not None:
            options["top_k"] = top_k
        if top_p is not None:
            options["top_p"] = top_p
        if num_predict is not None:
            options["num_predict"] = num_predict
        self.options = options

    def complete(self, messages: List[Dict[str, str]]) -> str:
        try:
            resp = self.client.chat(model=self.model, messages=messages, options=self.options)
        except Exception as exc:
            logging.warning("Ollama chat call failed for model %s: %s", self.model, exc)
            raise RemoteServiceError(f"ollama error: {exc}", exc) from exc

        try:
            content = resp["message"]["content"]
        except (KeyError, TypeError) as exc:
            raise RemoteServiceError("malformed response from ollama", exc) from exc

        text = strip_think(content or "")
        if not text:
            raise RemoteServiceError("no response generated by the model")
        return text
