"""
Ticket Graph Client Module.

Neo4j client for the ticket lifecycle store.
Supports schema management, explicit transactions, and raw Cypher execution.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession
from neo4j.exceptions import ClientError

from ticketlife.config.settings import get_settings

logger = structlog.get_logger(__name__)


class TicketGraphClient:
    """
    Neo4j client for ticket lifecycle operations.

    Owns the driver and hands out sessions; lifecycle transactions are opened
    on sessions obtained through :meth:`open_session`.
    """

    # Uniqueness constraints: ids are unique per store, uuids are unique per store
    SCHEMA_CONSTRAINTS = [
        "CREATE CONSTRAINT ticket_id IF NOT EXISTS FOR (n:Ticket) REQUIRE n.id IS UNIQUE",
        "CREATE CONSTRAINT ticket_uuid IF NOT EXISTS FOR (n:Ticket) REQUIRE n.uuid IS UNIQUE",
        "CREATE CONSTRAINT ticket_trash_id IF NOT EXISTS FOR (n:TicketTrash) REQUIRE n.id IS UNIQUE",
        "CREATE CONSTRAINT ticket_trash_uuid IF NOT EXISTS FOR (n:TicketTrash) REQUIRE n.uuid IS UNIQUE",
        "CREATE CONSTRAINT id_sequence_label IF NOT EXISTS FOR (n:IdSequence) REQUIRE n.label IS UNIQUE",
        "CREATE CONSTRAINT write_lock_name IF NOT EXISTS FOR (n:WriteLock) REQUIRE n.name IS UNIQUE",
    ]

    SCHEMA_INDEXES = [
        "CREATE INDEX ticket_name_owner IF NOT EXISTS FOR (n:Ticket) ON (n.name, n.owner)",
        "CREATE INDEX ticket_host IF NOT EXISTS FOR (n:Ticket) ON (n.host)",
        "CREATE INDEX ticket_trash_owner IF NOT EXISTS FOR (n:TicketTrash) ON (n.owner)",
        "CREATE INDEX tag_resource_ref IF NOT EXISTS "
        "FOR (n:TagResource) ON (n.resource_type, n.resource, n.resource_location)",
        "CREATE INDEX permission_ref IF NOT EXISTS "
        "FOR (n:Permission) ON (n.resource_type, n.resource, n.resource_location)",
    ]

    def __init__(self, settings: Any = None) -> None:
        """Initialize the client with optional custom settings."""
        self._driver: AsyncDriver | None = None
        self._settings = settings or get_settings().neo4j

    @property
    def settings(self) -> Any:
        return self._settings

    async def connect(self) -> None:
        """Establish connection to Neo4j database."""
        if self._driver is not None:
            return

        self._driver = AsyncGraphDatabase.driver(
            self._settings.uri,
            auth=(self._settings.username, self._settings.password.get_secret_value()),
            max_connection_pool_size=self._settings.max_connection_pool_size,
        )
        await self._driver.verify_connectivity()
        logger.info("Connected to Neo4j", uri=self._settings.uri)

    async def close(self) -> None:
        """Close the database connection."""
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Disconnected from Neo4j")

    async def open_session(self) -> AsyncSession:
        """Open a session the caller is responsible for closing."""
        if self._driver is None:
            await self.connect()

        assert self._driver is not None  # Type guard for mypy
        return self._driver.session(database=self._settings.database)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        session = await self.open_session()
        try:
            yield session
        finally:
            await session.close()

    # =========================================================================
    # Schema Management
    # =========================================================================

    async def setup_schema(self) -> dict[str, Any]:
        """
        Create all schema constraints and indexes.

        Returns:
            Dictionary with creation results for each statement type
        """
        results: dict[str, list[Any]] = {
            "constraints": [],
            "indexes": [],
            "errors": [],
        }

        async with self.session() as session:
            for kind, queries in (
                ("constraints", self.SCHEMA_CONSTRAINTS),
                ("indexes", self.SCHEMA_INDEXES),
            ):
                for query in queries:
                    try:
                        await session.run(query)
                        results[kind].append({"query": query[:60], "status": "created"})
                    except ClientError as e:
                        if "already exists" in str(e).lower():
                            results[kind].append({"query": query[:60], "status": "exists"})
                        else:
                            results["errors"].append({"query": query[:60], "error": str(e)})
                            logger.warning("Schema statement failed", query=query[:60], error=str(e))

        logger.info(
            "Schema setup completed",
            constraints=len(results["constraints"]),
            indexes=len(results["indexes"]),
            errors=len(results["errors"]),
        )
        return results

    # =========================================================================
    # Generic Query Execution
    # =========================================================================

    async def execute_cypher(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a raw Cypher query in an auto-commit transaction.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            List of result records as dictionaries
        """
        async with self.session() as session:
            result = await session.run(query, parameters or {})
            records: list[dict[str, Any]] = await result.data()

        logger.debug(
            "Cypher executed",
            query=query[:100],
            param_count=len(parameters) if parameters else 0,
            result_count=len(records),
        )

        return records


# Singleton instance
_client: TicketGraphClient | None = None


def get_ticket_client() -> TicketGraphClient:
    """Get the singleton TicketGraphClient instance."""
    global _client
    if _client is None:
        _client = TicketGraphClient()
    return _client
