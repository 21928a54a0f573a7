from __future__ import annotations

import argparse

import uvicorn

from .config import get_settings


def main() -> None:
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="ilovepdf-mcp", description="iLovePDF / iLoveIMG MCP server")
    parser.add_argument("--stdio", action="store_true", help="Serve MCP over stdin/stdout instead of HTTP")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    args = parser.parse_args()

    if args.stdio:
        from .stdio import main as stdio_main

        stdio_main()
        return

    uvicorn.run(
        "ilovepdf_mcp.server:app",
        host=args.host,
        port=args.port,
        log_level=settings.uvicorn_log_level,
        reload=False,
    )


if __name__ == "__main__":
    main()
