# scripts/serve.py
"""
Start the HTTP API with the recurring dispatcher jobs attached.

    python scripts/serve.py
    python scripts/serve.py --host 0.0.0.0 --port 8080 --config settings.json
"""

import argparse
import os
import sys
from pathlib import Path

import uvicorn

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.pestalert.config import load_settings  # noqa: E402
from backend.pestalert.logging_setup import logger  # noqa: E402
from backend.pestalert.main import build_services, create_app  # noqa: E402


def main(argv=None):
    parser = argparse.ArgumentParser(description="Serve the PestAlert API and scheduler")
    parser.add_argument("--host", default=os.getenv("PESTALERT_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PESTALERT_PORT", "8000")))
    parser.add_argument("--config", type=Path, default=None, help="JSON settings file")
    parser.add_argument("--no-scheduler", action="store_true", help="serve the API without the recurring jobs")
    args = parser.parse_args(argv)

    services = build_services(load_settings(args.config))
    app = create_app(services, start_scheduler=not args.no_scheduler)
    logger.info(f"[serve] listening on {args.host}:{args.port}")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=os.getenv("PESTALERT_LOG_LEVEL", "info").lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
