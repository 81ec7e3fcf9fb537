"""Entry point: python -m retention {run,serve,seed}."""
import argparse
import asyncio
import logging
import sys

from core.errors import CatalogError, StoreResolutionError

logger = logging.getLogger("retention")


def _run(args) -> int:
    from retention.database import init_db
    from retention.orchestrator import run_all

    init_db()
    try:
        summary = asyncio.run(run_all())
    except (CatalogError, StoreResolutionError) as e:
        logger.error(f"[RUN] Aborted: {e}")
        return 1
    print(
        f"Run {summary.run_number}: {summary.jobs_processed} jobs, "
        f"{summary.jobs_failed} failed, {summary.rows_affected} rows"
    )
    return 0


def _serve(args) -> int:
    import uvicorn
    from retention.app import app

    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _seed(args) -> int:
    from retention.seed import main as seed_main

    seed_main(args.seed_args)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="python -m retention")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run every enabled retire job once")

    serve = sub.add_parser("serve", help="Start the scheduler and the admin API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8001)

    seed = sub.add_parser("seed", help="Create sample tables and register default jobs")
    seed.add_argument("seed_args", nargs=argparse.REMAINDER)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handlers = {"run": _run, "serve": _serve, "seed": _seed}
    command = args.command or "serve"
    if command == "serve" and args.command is None:
        args.host, args.port = "0.0.0.0", 8001
    return handlers[command](args)


if __name__ == "__main__":
    sys.exit(main())
