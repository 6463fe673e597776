"""Service wiring: one database handle shared by the engine and the views."""

from __future__ import annotations

import logging

from graffiti.core.logging import configure_logging
from graffiti.core.settings import Settings, settings
from graffiti.db.session import Database
from graffiti.relationships.engine import RelationshipEngine
from graffiti.relationships.views import AggregateViews

logger = logging.getLogger(__name__)


class RelationshipService:
    def __init__(self, database: Database, config: Settings = settings) -> None:
        self.config = config
        self.database = database
        self.relationships = RelationshipEngine(database)
        self.views = AggregateViews(database, refresh_interval=config.SNAPSHOT_REFRESH_INTERVAL_SECONDS)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "RelationshipService":
        return cls(Database.from_settings(config), config)

    def start(self) -> "RelationshipService":
        self.database.open()
        logger.info("%s started", self.config.PROJECT_NAME)
        return self

    def stop(self) -> None:
        self.database.close()
        logger.info("%s stopped", self.config.PROJECT_NAME)

    def __enter__(self) -> "RelationshipService":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()


def create_service(config: Settings = settings) -> RelationshipService:
    configure_logging(config.LOG_LEVEL)
    return RelationshipService.from_settings(config)
