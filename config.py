"""
Runtime configuration

Values come from the environment (a local .env file is loaded first).
"""

import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
ORDERS_COLLECTION = os.getenv("ORDERS_COLLECTION", "order")
ORDERS_CHANGE_STREAM = os.getenv("ORDERS_CHANGE_STREAM", "false").lower() in ("1", "true", "yes")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
