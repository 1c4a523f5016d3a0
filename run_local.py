#!/usr/bin/env python3
"""
Local development server runner.

Runs the FastAPI application using uvicorn for local development.
Point QUEUE_TABLE_NAME / AWS credentials at a real or local DynamoDB
(e.g. dynamodb-local) through the environment or a .env file.

Usage:
    python run_local.py
    python run_local.py --port 8000
    python run_local.py --reload  # Auto-reload on code changes
"""

import argparse
import sys
from pathlib import Path

project_root = Path(__file__).parent

try:
    import uvicorn
except ImportError:
    print("ERROR: uvicorn is not installed.")
    print("Please install dependencies: pip install -e .")
    sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        description="Run the email queue processor locally with uvicorn"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on code changes"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        help="Log level for uvicorn (default: info)"
    )

    args = parser.parse_args()

    if not (project_root / ".env").exists():
        print("NOTE: no .env file found, using environment variables and defaults.")
        print("Relevant variables: QUEUE_TABLE_NAME, AWS_REGION, EMAIL_PROVIDER,")
        print("  EMAIL_API_URL, EMAIL_API_KEY, BATCH_SIZE, MAX_ATTEMPTS")

    print("=" * 60)
    print("Starting Email Queue Processor (Local Development)")
    print("=" * 60)
    print(f"Server: http://{args.host}:{args.port}")
    print(f"API Docs: http://{args.host}:{args.port}/docs")
    print(f"Trigger: POST http://{args.host}:{args.port}/process-queue")
    print(f"Health: http://{args.host}:{args.port}/health")
    print("=" * 60)
    if args.reload:
        print("Auto-reload: ENABLED (code changes will restart server)")
    print()

    # Stay in project root so .env file loads correctly
    uvicorn.run(
        "email_queue.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        app_dir=str(project_root / "src"),
        reload_dirs=[str(project_root / "src")] if args.reload else None
    )


if __name__ == "__main__":
    main()
