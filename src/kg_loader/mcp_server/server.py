"""
kg-loader MCP Server.

Exposes SPARQL query execution, dataset catalogue search, vocabulary search,
and dataset loading over the Model Context Protocol (MCP).

Transport is chosen with ``KG_LOADER_MCP_TRANSPORT``:

* ``stdio`` (default): the client starts the server as a subprocess.
* ``streamable-http``: HTTP listener on ``KG_LOADER_MCP_HOST``/``KG_LOADER_MCP_PORT``.
* ``sse``: Server-Sent Events listener (legacy clients).

HTTP transports require ``Authorization: Bearer <key>`` when
``KG_LOADER_MCP_API_KEY`` is set.

Usage:
    python -m kg_loader.mcp_server
    KG_LOADER_MCP_TRANSPORT=streamable-http kg-loader-mcp
"""

import hmac
import logging
import logging.handlers
import os
import sys
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from kg_loader import __version__
from kg_loader.config import load_config
from kg_loader.errors import LoaderError

logger = logging.getLogger("kg_loader.mcp_server")

SERVER_NAME = "kg-loader SPARQL Server"
REMOTE_TRANSPORTS = ("streamable-http", "sse")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def _configure_logging() -> None:
    """Send ``kg_loader`` log records to a rotating file.

    stdout carries JSON-RPC under the stdio transport, so nothing may be
    logged there.  File: ``KG_LOADER_MCP_LOG_FILE`` (default
    ``~/.kg_loader/mcp_server.log``), level: ``KG_LOADER_MCP_LOG_LEVEL``.
    """
    default_file = Path.home() / ".kg_loader" / "mcp_server.log"
    log_path = Path(os.environ.get("KG_LOADER_MCP_LOG_FILE", str(default_file)))
    log_path.parent.mkdir(parents=True, exist_ok=True)

    level_name = os.environ.get("KG_LOADER_MCP_LOG_LEVEL", "INFO").upper()
    handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )

    root = logging.getLogger("kg_loader")
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)

    logger.info("%s %s starting, logging to %s", SERVER_NAME, __version__, log_path)


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(SERVER_NAME)


@mcp.tool()
def health_check() -> dict:
    """Check server status and configuration.

    Returns the server version, the configured SPARQL endpoint, and whether a
    bearer token is configured (the token itself is never returned).
    """
    report: dict = {"server": SERVER_NAME, "version": __version__}
    try:
        cfg = load_config()
    except LoaderError as e:
        report["error"] = str(e)
        return report

    report["configuration"] = {
        "sparql_endpoint": cfg.sparql_endpoint,
        "bearer_token": bool(cfg.bearer_token),
        "timeout": cfg.timeout,
        "label_language": cfg.label_language,
        "catalogue_graph": cfg.catalogue_graph,
    }
    return report


def _register_query_tools():
    from kg_loader.mcp_server.tools import register_tools
    register_tools(mcp)


# ---------------------------------------------------------------------------
# Remote transports
# ---------------------------------------------------------------------------

def _require_api_key(app, api_key: str):
    """Reject HTTP requests whose bearer token is not *api_key*."""
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import JSONResponse

    expected = f"Bearer {api_key}"

    async def check_key(request, call_next):
        # CORS preflight carries no credentials
        if request.method == "OPTIONS":
            return await call_next(request)
        supplied = request.headers.get("Authorization", "")
        if hmac.compare_digest(supplied.encode(), expected.encode()):
            return await call_next(request)
        logger.warning("Rejected %s %s: bad or missing API key", request.method, request.url.path)
        return JSONResponse(
            {"error": "Unauthorized"},
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )

    app.add_middleware(BaseHTTPMiddleware, dispatch=check_key)
    return app


def _serve_http(transport: str, host: str, port: int) -> None:
    import uvicorn

    mcp.settings.host = host
    mcp.settings.port = port
    app = mcp.streamable_http_app() if transport == "streamable-http" else mcp.sse_app()

    api_key = os.environ.get("KG_LOADER_MCP_API_KEY", "")
    if api_key:
        logger.info("API-key authentication enabled")
        app = _require_api_key(app, api_key)

    logger.info("Serving %s on %s:%d", transport, host, port)
    print(f"{SERVER_NAME} listening on http://{host}:{port} ({transport})", file=sys.stderr)
    uvicorn.run(app, host=host, port=port, log_level="info")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    _configure_logging()
    _register_query_tools()

    transport = os.environ.get("KG_LOADER_MCP_TRANSPORT", "stdio").lower()
    if transport == "stdio":
        logger.info("Serving stdio")
        mcp.run(transport="stdio")
    elif transport in REMOTE_TRANSPORTS:
        _serve_http(
            transport,
            os.environ.get("KG_LOADER_MCP_HOST", "0.0.0.0"),
            int(os.environ.get("KG_LOADER_MCP_PORT", "8000")),
        )
    else:
        print(
            f"Unknown transport {transport!r}; expected 'stdio', "
            f"{' or '.join(repr(t) for t in REMOTE_TRANSPORTS)}.",
            file=sys.stderr,
        )
        sys.exit(1)
