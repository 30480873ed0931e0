# postock/api/routers/_csv.py
from __future__ import annotations

from fastapi import Request
from fastapi.responses import Response

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def is_csv_request(request: Request) -> bool:
    ctype = (request.headers.get("content-type") or "").lower()
    return ctype.startswith("text/csv") or ctype.startswith("text/plain")


async def read_text_body(request: Request) -> str:
    return (await request.body()).decode("utf-8-sig")


def csv_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
