#  Project Scaffolder - Entry Point
#
#  Launches the FastAPI server via uvicorn.
#
#  Depends on: scaffolder/app.py, scaffolder/config.py, scaffolder/logging_config.py
#  Used by:    (run directly)

import sys

import uvicorn

from scaffolder.logging_config import setup_logging


def main():
    try:
        from scaffolder.config import HOST, LOG_FORMAT, LOG_LEVEL, PORT, cfg
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(level=LOG_LEVEL, fmt=LOG_FORMAT)

    uvicorn.run(
        "scaffolder.app:app",
        host=HOST,
        port=PORT,
        reload=cfg("server.reload", False),
    )


if __name__ == "__main__":
    main()
