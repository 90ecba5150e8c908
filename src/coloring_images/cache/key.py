from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from coloring_images.gen.types import GenerationRequest


def compact_json(obj: Any) -> str:
    # key order is significant: fingerprints must match rows already stored
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _norm(value: str | None) -> str:
    return (value or "").lower().strip()


def normalize_request(request: GenerationRequest) -> dict[str, str]:
    return {
        "theme": _norm(request.theme),
        "subject": _norm(request.subject),
        "difficulty": request.difficulty.value,
        "customPrompt": _norm(request.custom_prompt),
    }


def compute_fingerprint(request: GenerationRequest) -> str:
    return sha256_text(compact_json(normalize_request(request)))
