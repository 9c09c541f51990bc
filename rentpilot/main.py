"""Main application entry point."""

import logging

import uvicorn
from dotenv import load_dotenv

# Load environment variables before settings are first read
load_dotenv()

from rentpilot.config import get_settings  # noqa: E402
from rentpilot.services.logging import setup_server_logging  # noqa: E402

settings = get_settings()
setup_server_logging(settings.log_file, settings.log_level)
logger = logging.getLogger(__name__)


def run_server(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API server."""
    from rentpilot.api.app import app

    logger.info("Starting Uvicorn server on %s:%d...", host, port)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    uvicorn.Server(config).run()


def run_generate_rent(month: str | None = None) -> int:
    """Run the rent charge generator once. Returns a process exit code."""
    from rentpilot.models import Base
    from rentpilot.services import SessionLocal, engine
    from rentpilot.services.charge_generator import ChargeGenerator

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        result = ChargeGenerator(db).generate_rent_charges(month=month)
    finally:
        db.close()

    for error in result.errors:
        logger.warning("Lease %s: %s", error["lease_id"], error["error"])
    logger.info(
        "Generated rent for %s: created=%d skipped=%d errors=%d",
        result.month,
        result.created,
        result.skipped,
        len(result.errors),
    )
    return 0


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="RentPilot")
    parser.add_argument(
        "--mode",
        choices=["serve", "generate-rent"],
        default="serve",
        help="Run the API server or generate rent charges once",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--month", default=None, help="Target month for generate-rent (YYYY-MM)")

    args = parser.parse_args()

    if args.mode == "generate-rent":
        raise SystemExit(run_generate_rent(args.month))
    run_server(args.host, args.port)


if __name__ == "__main__":
    main()
