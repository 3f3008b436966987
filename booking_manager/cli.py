from __future__ import annotations

import logging
from typing import Optional

import click
import uvicorn
from dotenv import load_dotenv

load_dotenv()

from .config import Settings
from .main import connect_backend, create_app, seed_example_timeslots

logger = logging.getLogger(__name__)


@click.command()
@click.option("-k", "--key", "password", help="Authentication key for admin API access.")
@click.option("-p", "--port", type=int, help="Port number for the HTTP server.")
@click.option(
    "-d",
    "--database",
    is_flag=True,
    help="Store timeslots in Supabase (SUPABASE_URL/SUPABASE_KEY). Without it timeslots are kept in memory only.",
)
@click.option("--examples", is_flag=True, help="Add five example timeslots on startup.")
def main(password: Optional[str], port: Optional[int], database: bool, examples: bool) -> None:
    """Run the booking manager HTTP server."""
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict = {}
    if password:
        logger.info("Password provided as argument")
        overrides["http_password"] = password
    elif not settings.http_password:
        raise click.UsageError("No admin password: pass --key or set HTTP_PASSWORD in .env")
    if port:
        overrides["port"] = port
    if not database:
        logger.info("Run without database")
        overrides["supabase_url"] = None
        overrides["supabase_key"] = None
    elif not settings.database_configured:
        raise click.UsageError("--database requires SUPABASE_URL and SUPABASE_KEY in .env")
    settings = settings.model_copy(update=overrides)

    backend = connect_backend(settings)
    if examples:
        seed_example_timeslots(backend)

    app = create_app(backend, settings)
    logger.info("Accessible at %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
