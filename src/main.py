"""
Skyling template store - bootstrap job

Prepares PostgreSQL for the prompt builder: creates the config and template
tables, seeds the default prompt fields on first boot and imports templates
left over in the legacy templates.json file.
"""

import asyncio

import psycopg2

from src.config.settings import Settings
from src.database.postgres import PostgresClient
from src.database.schema import init_schema
from src.domain.errors import StoreUnavailable, TemplateStoreError
from src.logger.logger import Logger, get_logger, init_logger
from src.logger.postgres_writer import PostgresWriter
from src.logger.types import Category, category, param
from src.repository.config_repository import ConfigRepository
from src.repository.template_repository import TemplateRepository
from src.services.seeder import ConfigSeeder, TemplateMigrator
from src.services.template_store import TemplateStore


def ensure_seeded(
    config_repo: ConfigRepository,
    template_repo: TemplateRepository,
    settings: Settings,
    logger: Logger,
) -> None:
    """
    Run first-boot seeding and legacy migration.

    Failures are logged and do not abort startup: an empty store is still a
    usable store.
    """
    seeder = ConfigSeeder(config_repo, settings.bootstrap.seed_dir)
    try:
        seeder.seed_if_empty()
    except TemplateStoreError as e:
        logger.error("Config seeding failed", e, category(Category.SEEDING))

    migrator = TemplateMigrator(template_repo, settings.bootstrap.legacy_templates_file)
    try:
        migrator.migrate_if_empty()
    except TemplateStoreError as e:
        logger.error("Template migration failed", e, category(Category.MIGRATION))


async def start_log_writer(settings: Settings, logger: Logger) -> PostgresWriter | None:
    """Connect the log writer; logging stays on stdout when that fails."""
    writer = PostgresWriter(dsn=settings.postgres.dsn)
    try:
        await writer.connect()
    except psycopg2.Error as e:
        logger.warn("Log writer unavailable, logging to stdout", param("error", str(e)))
        return None
    return writer


def create_store(postgres_client: PostgresClient, settings: Settings) -> TemplateStore:
    """Wire repositories into a TemplateStore for the request-handling layer."""
    return TemplateStore(
        templates=TemplateRepository(postgres_client),
        config=ConfigRepository(postgres_client),
        cache_enabled=settings.template_cache_enabled,
    )


async def shutdown(
    postgres_client: PostgresClient,
    log_writer: PostgresWriter | None,
) -> None:
    """Graceful shutdown."""
    logger = get_logger()
    logger.info("Shutting down", category(Category.BOOTSTRAP))

    await postgres_client.close()

    # Flush remaining log records last
    if log_writer:
        await log_writer.close()


async def main() -> int:
    """Main entry point; returns the process exit code."""
    settings = Settings()

    init_logger(
        service_name=settings.service_name,
        environment=settings.environment,
        level=settings.log_level,
    )
    logger = get_logger().with_category(Category.BOOTSTRAP)
    logger.info(
        "Starting Skyling bootstrap",
        param("environment", settings.environment),
        param("service_name", settings.service_name),
        param("version", settings.service_version),
    )

    postgres_client = PostgresClient(settings.postgres)
    log_writer: PostgresWriter | None = None
    try:
        await postgres_client.connect()
        logger.info(
            "Connected to PostgreSQL",
            category(Category.DATABASE),
            param("target", settings.postgres.safe_target),
        )

        init_schema(postgres_client)
        logger.info("Schema ready", category(Category.DATABASE))

        # The logs table exists only after init_schema
        if settings.log_to_postgres:
            log_writer = await start_log_writer(settings, logger)
            if log_writer:
                init_logger(
                    service_name=settings.service_name,
                    environment=settings.environment,
                    writer=log_writer,
                    level=settings.log_level,
                )
                logger = get_logger().with_category(Category.BOOTSTRAP)

        store = create_store(postgres_client, settings)
        ensure_seeded(store.config, store.templates, settings, logger)

        templates = store.list_templates()
        config = store.get_config()
        logger.info(
            "Template store ready",
            param("templates", len(templates)),
            param("config_keys", sorted(config)),
        )
    except StoreUnavailable as e:
        logger.error(
            "Database initialization error - ensure DATABASE_URL is set",
            e,
            param("target", settings.postgres.safe_target),
        )
        return 1
    finally:
        await shutdown(postgres_client, log_writer)

    return 0


def run() -> None:
    """Console script entry point."""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
