"""Project root entry point for launching the web interface."""

from __future__ import annotations

import argparse


def main():
    parser = argparse.ArgumentParser(description="Underlator translation server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5500)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    from underlator.web import create_app

    app = create_app()
    app.run(host=args.host, port=args.port, debug=args.debug, threaded=True)


if __name__ == "__main__":
    main()
