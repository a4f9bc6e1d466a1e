from __future__ import annotations

import base64
import json
import re
import zipfile
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Iterable

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]+", re.UNICODE)


def buffer_to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def safe_filename_part(label: str) -> str:
    """Collapse anything that is not a word char, dot or dash into '_'."""
    return _UNSAFE_FILENAME_CHARS.sub("_", label.strip()).strip("_.")


@dataclass
class PackagingService:
    """Build ZIP archives of PNG outputs plus a metadata.json entry."""
    compression_level: int = 9

    def build_zip(self, files: Iterable[tuple[str, bytes]], metadata: dict[str, Any]) -> bytes:
        out = BytesIO()
        with zipfile.ZipFile(
            out, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=self.compression_level
        ) as zf:
            for name, data in files:
                zf.writestr(name, data)
            zf.writestr("metadata.json", json.dumps(metadata, ensure_ascii=False, indent=2))
        return out.getvalue()

    @staticmethod
    def crop_filename(index: int, label: str | None) -> str:
        if label:
            part = safe_filename_part(label)
            if part:
                return f"cropped_{index}_{part}.png"
        return f"cropped_{index}.png"
