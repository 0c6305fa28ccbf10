from __future__ import annotations

from datetime import date
from typing import List

from fastapi import FastAPI, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field


app = FastAPI(title="httptool Mock APIs", version="0.1.0")


class UserData(BaseModel):
    id: str
    firstName: str
    lastName: str
    dob: str = Field(description="Date of birth (YYYY-MM-DD).")


class Item(BaseModel):
    id: int
    name: str
    price: float


ITEMS: List[Item] = [Item(id=i, name=f"item-{i:02d}", price=round(1.5 * i, 2)) for i in range(1, 26)]

CURSOR_PAGE_SIZE = 10

PAGE_HTML = """<!DOCTYPE html>
<html>
  <head>
    <title>Mock page</title>
    <style>body { font-family: sans-serif; }</style>
  </head>
  <body>
    <nav><a href="/">Home</a></nav>
    <main>
      <h1>Catalog</h1>
      <p class="lead">
        Twenty five items are available.
      </p>
    </main>
    <script>console.log("ignored");</script>
  </body>
</html>
"""

# Smallest valid JPEG header plus padding; enough for content sniffing.
IMAGE_BYTES = bytes([0xFF, 0xD8, 0xFF, 0xE0, 0x00, 0x10]) + b"JFIF\x00" + bytes(32) + bytes([0xFF, 0xD9])


@app.get("/health")
def health() -> dict:
    return {"ok": True}


@app.get("/v1/users/{user_id}")
def get_user(user_id: str) -> dict:
    # Deterministic fake user (based on id hash) so it's stable across calls.
    seed = sum(ord(c) for c in user_id) % 1000
    first = ["Aarav", "Aisha", "Riya", "Kabir", "Neha", "Arjun"][seed % 6]
    last = ["Sharma", "Khan", "Gupta", "Verma", "Singh", "Mehta"][seed % 6]
    dob = date(1990 + (seed % 20), 1 + (seed % 12), 1 + (seed % 28)).isoformat()
    return {"data": UserData(id=user_id, firstName=first, lastName=last, dob=dob).model_dump()}


@app.get("/v1/items")
def list_items(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> list:
    """Plain JSON array; empty once `page` runs past the end."""
    start = (page - 1) * limit
    return [i.model_dump() for i in ITEMS[start : start + limit]]


@app.get("/v1/cursor")
def list_by_cursor(cursor: int = Query(0, ge=0)) -> dict:
    chunk = ITEMS[cursor : cursor + CURSOR_PAGE_SIZE]
    nxt = cursor + CURSOR_PAGE_SIZE
    next_url = f"/v1/cursor?cursor={nxt}" if nxt < len(ITEMS) else ""
    return {"data": [i.model_dump() for i in chunk], "nextUrl": next_url}


@app.get("/v1/page.html", response_class=HTMLResponse)
def page_html() -> str:
    return PAGE_HTML


@app.get("/v1/image.jpg")
def image() -> Response:
    return Response(content=IMAGE_BYTES, media_type="image/jpeg")


@app.api_route("/v1/echo", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def echo(request: Request) -> JSONResponse:
    raw = await request.body()
    body: object = None
    if raw:
        try:
            body = await request.json()
        except ValueError:
            body = raw.decode("utf-8", errors="replace")
    query: dict[str, object] = {}
    for k, v in request.query_params.multi_items():
        if k in query:
            prev = query[k]
            query[k] = (prev if isinstance(prev, list) else [prev]) + [v]
        else:
            query[k] = v
    return JSONResponse(
        {
            "method": request.method,
            "query": query,
            "headers": {k.lower(): v for k, v in request.headers.items()},
            "body": body,
        }
    )


@app.get("/v1/fail")
def fail() -> PlainTextResponse:
    return PlainTextResponse("Connection refused", status_code=500)


@app.get("/v1/status/{code}")
def status(code: int) -> Response:
    return Response(status_code=code)
