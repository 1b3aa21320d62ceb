#!/usr/bin/env python3
"""
CLI script to run the MLVectorSearch REST API server.

Usage:
    python -m mlvectorsearch.api.server
    or
    mlvectorsearch-server --port 8000
"""
import uvicorn
import argparse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run MLVectorSearch REST API server")
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)"
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for parallel builds and batch queries (default: CPU count)"
    )
    return parser


def main(argv=None):
    """Main function to run the API server."""
    args = build_parser().parse_args(argv)

    print(f"Starting MLVectorSearch API server on {args.host}:{args.port}")
    print(f"API documentation available at: http://{args.host}:{args.port}/docs")

    from ..implementations.query_processor import QueryProcessor
    from .rest_api import RestAPI

    api = RestAPI(
        query_processor=QueryProcessor(max_workers=args.workers),
        title="MLVectorSearch API",
        enable_file_logging=args.log_file is not None,
        log_level=args.log_level.upper(),
        log_file=args.log_file or "vector_search_api.log"
    )

    uvicorn.run(
        api.get_app(),
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        log_config=None
    )


if __name__ == "__main__":
    main()
