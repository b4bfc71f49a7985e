import os

# Database Configuration
# Single embedded store of record; any Tortoise URL works (e.g. postgres://...)
DB_URL = os.getenv("DATABASE_URL", "sqlite://pos.sqlite3")

# Application Metadata
PROJECT_NAME = "Restaurant POS Order Engine"
VERSION = "1.0.0"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Outbox Poller Configuration (delivers events to printing/messaging side effects)
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 1)) # Poller checks for new events every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max retries for an event
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many events to fetch per poll

# Emit inventory.low_stock_alert.v1 when a deduction leaves an item at or below its threshold
LOW_STOCK_ALERTS = os.getenv("LOW_STOCK_ALERTS", "true").lower() == "true"
