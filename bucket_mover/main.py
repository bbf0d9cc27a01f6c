"""
Bucket Mover Entry Point

Loads configuration, waits until both providers accept our credentials and
then serves the web front end until interrupted.

Author: Bucket Mover Project
License: MIT
"""

import argparse
import sys
from typing import Dict, List, Optional

import uvicorn

from .config.config_loader import ConfigLoader
from .config.schema import Config
from .core.errors import ConfigError, ReadinessFailed
from .core.migration import MigrationEngine
from .core.readiness import CredentialGate, await_all
from .scheduler.task_scheduler import MigrationScheduler
from .storage.base import ObjectStore
from .storage.factory import open_store
from .utils.logger import get_logger, setup_logging
from .web.app import create_app

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bucket-mover",
        description="Move every object between an S3 bucket and a GCS bucket"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $CONFIG_PATH or ./config.yaml)"
    )
    return parser.parse_args(argv)


def build_gates(config: Config) -> List[CredentialGate]:
    """One readiness gate per provider, AWS first."""
    gates = []
    for name, provider_config in (("aws", config.aws), ("gcp", config.gcp)):
        gates.append(CredentialGate(
            name,
            lambda provider_config=provider_config, name=name: open_store(provider_config, name),
            policy=config.readiness.build_policy()
        ))
    return gates


def wait_for_stores(config: Config) -> Dict[str, ObjectStore]:
    """
    Block until both buckets are reachable.

    Raises:
        ReadinessFailed: A provider can never become ready
    """
    stores = await_all(build_gates(config), concurrent=config.readiness.concurrent)
    return {"aws": stores["aws"], "gcp": stores["gcp"]}


def close_stores(stores: Dict[str, ObjectStore]) -> None:
    for name, store in stores.items():
        try:
            store.close()
        except Exception as e:
            logger.warning(f"Failed to close {name} store: {e}")


def serve(config: Config, stores: Dict[str, ObjectStore]) -> None:
    """Run the HTTP server until shutdown."""
    engine = MigrationEngine(
        chunk_size=config.migration.chunk_size,
        max_workers=config.migration.max_workers
    )
    scheduler = MigrationScheduler(
        config.migration.schedule,
        lambda: engine.migrate(stores["aws"], stores["gcp"])
    )
    app = create_app(stores, engine, scheduler=scheduler)

    logger.info(f"serving on port {config.app.port}")
    uvicorn.run(
        app,
        host=config.app.host,
        port=config.app.port,
        log_level=str(config.app.log_level).lower()
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the service.

    Returns:
        Process exit status
    """
    args = parse_args(argv)
    setup_logging()

    try:
        config = ConfigLoader(args.config).load()
    except ConfigError as e:
        logger.error(str(e))
        return 1

    setup_logging(
        log_level=config.app.log_level,
        log_to_file=config.app.log_to_file,
        log_file_path=config.app.log_file_path,
        log_rotation_size=config.app.log_rotation_size,
        log_retention_count=config.app.log_retention_count,
        json_format=config.app.json_logs,
        library_log_level=config.app.library_log_level
    )

    try:
        stores = wait_for_stores(config)
    except ReadinessFailed as e:
        logger.error(str(e))
        return 1

    try:
        serve(config, stores)
    except ConfigError as e:
        logger.error(str(e))
        return 1
    finally:
        close_stores(stores)

    return 0


if __name__ == "__main__":
    sys.exit(main())
