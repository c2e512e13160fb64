"""
Main entry point for ForSure.
Commands:
  init-db: Create tenant, network and property tables
  sync-properties: Seed network identities from residential property records
  refresh-clean-streaks: Recompute clean streak months (run monthly)
  sync-business: Backfill one business's existing customers into the network
  web: Start the API server
"""
import argparse
import logging
import os
import sys

from loguru import logger

from config.settings import DB_DSN_ENV, PROPERTY_SYNC_LIMIT, WEB_HOST, WEB_PORT
from forsure.db.engine import get_engine, get_session_factory, init_schema, resolve_dsn
from forsure.exceptions import ForSureError
from forsure.services.customer_service import CustomerService
from forsure.services.network_identity_store import NetworkIdentityStore
from forsure.services.property_sync import PropertySyncService
from forsure.utils.logging_config import configure_logger


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _intercept_std_logging() -> None:
    # Route uvicorn and sqlalchemy stdlib logging through loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


def handle_init_db(dsn: str) -> None:
    init_schema(get_engine(dsn))
    logger.success("Database schema created.")


def handle_sync_properties(dsn: str, county: str | None, municipality: str | None, limit: int) -> None:
    service = PropertySyncService(get_session_factory(dsn))
    result = service.batch_sync_properties(county=county, municipality=municipality, limit=limit)
    logger.success(f"Property sync complete: {result.created} created, {result.skipped} skipped")


def handle_refresh_clean_streaks(dsn: str) -> None:
    updated = NetworkIdentityStore(get_session_factory(dsn)).refresh_clean_streaks()
    logger.success(f"Clean streaks refreshed: {updated} identities updated")


def handle_sync_business(dsn: str, business_id: str) -> None:
    synced = CustomerService(get_session_factory(dsn)).sync_business_customers(business_id)
    logger.success(f"Business {business_id}: {synced} customers synced to network")


def handle_web(dsn: str, host: str, port: int) -> None:
    """Start the FastAPI server (app/web)."""
    import uvicorn

    os.environ[DB_DSN_ENV] = dsn

    logger.info(f"Starting ForSure API on http://{host}:{port}")
    uvicorn.run("app.web.main:app", host=host, port=port, reload=False)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="ForSure command line")
    parser.add_argument("--dsn", default=None, help="SQLAlchemy database URL (default: FORSURE_DB_DSN env)")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL env or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")

    sync = sub.add_parser("sync-properties", help="Seed network identities from property records")
    sync.add_argument("--county", default=None, help="Only properties in this county")
    sync.add_argument("--municipality", default=None, help="Only properties in this municipality")
    sync.add_argument("--limit", type=int, default=PROPERTY_SYNC_LIMIT,
                      help=f"Max identities seeded per run (default {PROPERTY_SYNC_LIMIT})")

    sub.add_parser("refresh-clean-streaks", help="Recompute clean streak months for all identities")

    business = sub.add_parser("sync-business", help="Backfill a business's customers into the network")
    business.add_argument("business_id")

    web = sub.add_parser("web", help="Start the API server")
    web.add_argument("--host", default=WEB_HOST)
    web.add_argument("--port", type=int, default=WEB_PORT,
                     help=f"Port for web server (default {WEB_PORT} or FORSURE_WEB_PORT env var)")

    args = parser.parse_args(argv)

    configure_logger(level=args.log_level)
    _intercept_std_logging()
    dsn = resolve_dsn(args.dsn)

    try:
        if args.command == "init-db":
            handle_init_db(dsn)
        elif args.command == "sync-properties":
            handle_sync_properties(dsn, args.county, args.municipality, args.limit)
        elif args.command == "refresh-clean-streaks":
            handle_refresh_clean_streaks(dsn)
        elif args.command == "sync-business":
            handle_sync_business(dsn, args.business_id)
        elif args.command == "web":
            handle_web(dsn, args.host, args.port)
    except ForSureError as e:
        logger.error(f"{args.command} failed: {type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
