"""
Storage settings for the XP ledger.

Credentials come from the environment; the fallbacks only suit a local
development database.
"""

from typing import Final
import os
from dotenv import load_dotenv

load_dotenv()

MYSQL_USER: Final[str] = os.getenv("MYSQL_USER", "dev_user")
MYSQL_PASSWORD: Final[str] = os.getenv("MYSQL_PASSWORD", "dev_password")
MYSQL_HOST: Final[str] = os.getenv("MYSQL_HOST", "localhost")
MYSQL_PORT: Final[int] = int(os.getenv("MYSQL_PORT", "3306"))
MYSQL_DATABASE: Final[str] = os.getenv("MYSQL_DATABASE", "attendant_xp_dev")

# Connections kept in the shared pool
DB_POOL_SIZE: Final[int] = int(os.getenv("DB_POOL_SIZE", "5"))

# Seconds to wait on GET_LOCK before giving up
DB_LOCK_TIMEOUT_SECONDS: Final[int] = int(os.getenv("DB_LOCK_TIMEOUT_SECONDS", "10"))
