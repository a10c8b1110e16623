"""
Database connection management.

Provides MySQL protocol connections to the database being estimated.
"""

import logging

import pymysql

from serverless_cost_calculator.config.loader import WorkloadSourceConfiguration

logger = logging.getLogger(__name__)


def get_connection(config: WorkloadSourceConfiguration) -> pymysql.connections.Connection:
    """Create and return a connection to a MySQL-compatible server.
    
    Args:
        config: Connection settings for the source database
        
    Returns:
        Open PyMySQL connection with autocommit enabled
    """
    logger.info(
        "Connecting to %s as '%s' using database '%s'",
        config.address, config.user, config.database
    )
    return pymysql.connect(
        charset="utf8mb4",
        autocommit=True,
        **config.connection_kwargs()
    )
