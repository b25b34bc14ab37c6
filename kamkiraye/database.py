"""Backend connection settings and the shared HTTP client."""

import os
from collections.abc import AsyncGenerator

import httpx
from dotenv import load_dotenv
from starlette.requests import Request

from .client import ListingClient

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL", "http://localhost:54321").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_TIMEOUT = float(os.getenv("SUPABASE_TIMEOUT", "15"))
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "property-images")

WHATSAPP_NUMBER = os.getenv("WHATSAPP_NUMBER", "923001234567")


def cors_origins() -> list[str]:
    """Allowed CORS origins, comma separated in CORS_ORIGINS."""
    raw = os.getenv("CORS_ORIGINS", "").strip()
    if raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return ["http://localhost:5173", "http://localhost:8080"]


def create_http_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Build the AsyncClient every backend request goes through."""
    headers = {
        "apikey": SUPABASE_ANON_KEY,
        "Authorization": f"Bearer {SUPABASE_ANON_KEY}",
        "Accept": "application/json",
    }
    return httpx.AsyncClient(
        base_url=SUPABASE_URL,
        headers=headers,
        timeout=SUPABASE_TIMEOUT,
        transport=transport,
    )


async def get_client(request: Request) -> AsyncGenerator[ListingClient, None]:
    """Dependency for getting the remote data client."""
    yield ListingClient(request.app.state.http, storage_bucket=STORAGE_BUCKET)
