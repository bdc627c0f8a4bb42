# __main__.py
#
# Run the API server:
#   python -m extrashare --host 0.0.0.0 --port 8000

import argparse
import os

import uvicorn


def main():
    ap = argparse.ArgumentParser(description="ExtraShare BXC backend")
    ap.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    ap.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    ap.add_argument("--reload", action="store_true")
    args = ap.parse_args()

    uvicorn.run(
        "extrashare.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
