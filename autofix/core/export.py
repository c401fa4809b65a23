"""
Bulk export of patch records as JSON documents and ZIP archives.
"""

import io
import json
import zipfile
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .schema import PatchRecord


def parse_ids(raw: Optional[str]) -> List[str]:
    """Comma-separated id list; empty when nothing usable was supplied."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def select_records(records: List[PatchRecord], ids: List[str]) -> List[PatchRecord]:
    if not ids:
        return list(records)
    wanted = set(ids)
    return [r for r in records if r.id in wanted]


def record_json(record: PatchRecord) -> str:
    return json.dumps(record.to_dict(), indent=2, ensure_ascii=False)


def records_json(records: Iterable[PatchRecord]) -> str:
    return json.dumps({"patches": [r.to_dict() for r in records]}, indent=2, ensure_ascii=False)


def build_zip(records: Iterable[PatchRecord]) -> bytes:
    """One `<id>.json` entry per record."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for record in records:
            archive.writestr(f"{record.id}.json", record_json(record))
    return buffer.getvalue()


def export_filename(extension: str) -> str:
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return f"autofix-patches-{today}.{extension}"


def attachment_header(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}
