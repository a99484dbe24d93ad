"""Async database operations for the soil monitor.

This package provides async database operations using aiosqlite for
non-blocking database access throughout the application.

See connection.py for details on connection patterns.
"""

from soilmon.lib.db.connection import Database as Database
from soilmon.lib.db.connection import close_db as close_db
from soilmon.lib.db.connection import create_schema as create_schema
from soilmon.lib.db.connection import get_db as get_db
from soilmon.lib.db.connection import init_db as init_db
from soilmon.lib.db.readings import append_reading as append_reading
from soilmon.lib.db.readings import clear as clear
from soilmon.lib.db.readings import count_readings as count_readings
from soilmon.lib.db.readings import snapshot_all as snapshot_all
from soilmon.lib.db.types import MoistureRow as MoistureRow
from soilmon.lib.db.types import SQLParams as SQLParams
