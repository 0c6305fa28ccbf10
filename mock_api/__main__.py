from __future__ import annotations

import os


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def main() -> None:
    """Serve the mock endpoints for local tool configs (MOCK_API_HOST / MOCK_API_PORT)."""
    try:
        import uvicorn  # type: ignore
    except Exception as exc:  # pragma: no cover
        raise SystemExit("uvicorn is required: pip install -e '.[mock]'") from exc

    uvicorn.run(
        "mock_api.app:app",
        host=os.environ.get("MOCK_API_HOST", "127.0.0.1"),
        port=int(os.environ.get("MOCK_API_PORT", "9001")),
        reload=_env_flag("MOCK_API_RELOAD"),
        log_level="info",
    )


if __name__ == "__main__":
    main()
