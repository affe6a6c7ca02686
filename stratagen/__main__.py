"""Entry point for running the stratagen API server.

  python -m stratagen [--host HOST] [--port PORT] [--log-level LEVEL]

Sessions and their cancellation tokens live in process memory, so the
server always runs with a single worker.
"""

import argparse


def parse_serve_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse serve-mode arguments (host, port, log level)."""
    parser = argparse.ArgumentParser(description='stratagen API server')
    parser.add_argument('--host', default='127.0.0.1', help='Bind address')
    parser.add_argument('--port', type=int, default=8000, help='Listen port')
    parser.add_argument('--log-level', default='info', help='Uvicorn log level')
    return parser.parse_args(args)


def main(args: list[str] | None = None) -> None:
    """Start uvicorn with the stratagen app."""
    serve_args = parse_serve_args(args)
    import uvicorn

    uvicorn.run(
        "stratagen.api.main:app",
        host=serve_args.host,
        port=serve_args.port,
        workers=1,
        log_level=serve_args.log_level,
        lifespan="on",
    )


if __name__ == "__main__":
    main()
