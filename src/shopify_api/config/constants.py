"""
Centralized application constants.

This file acts as the single point of truth for business logic constants
shared across the Shopify client and the Airtable sync worker.
"""

# ==============================================================================
# SHOPIFY
# ==============================================================================

# Orders requested per GraphQL page
ORDER_PAGE_SIZE = 150

# Delay between order pages to stay under the GraphQL cost budget
SHOPIFY_PAGE_DELAY_SECONDS = 0.1

# Request-level timeout shared by both external clients
HTTP_TIMEOUT_SECONDS = 30.0

# ==============================================================================
# AIRTABLE
# ==============================================================================

AIRTABLE_API_URL = "https://api.airtable.com/v0"

DEFAULT_AIRTABLE_TABLE = "VIVANTI LONDON ORDER TRACKING"

# Hard per-request limit of the Airtable records API
AIRTABLE_MAX_RECORDS_PER_REQUEST = 10

# Delay between create/update chunks (Airtable allows 5 requests/sec per base)
AIRTABLE_BATCH_DELAY_SECONDS = 0.2

# Airtable asks clients to wait 30 seconds after a 429
AIRTABLE_RATE_LIMIT_BACKOFF_SECONDS = 30.0

# ==============================================================================
# FIELD DERIVATION
# ==============================================================================

# Last fulfillment event statuses counted as a failed delivery
FAILED_DELIVERY_STATUSES = ("FAILED", "FAILURE")

SECONDS_PER_DAY = 86400

# ==============================================================================
# SYNC JOBS
# ==============================================================================

JOB_TYPE_FULL_SYNC = "full_sync"

STAGE_SHOPIFY_FETCH = "shopify_fetch"
STAGE_DATABASE_UPSERT = "database_upsert"
STAGE_AIRTABLE_SYNC = "airtable_sync"
STAGE_CRITICAL = "critical_error"

DEFAULT_MAX_RETRIES = 3

# Maximum time for a single sync stage (in seconds)
STAGE_TIMEOUT_SECONDS = 600

# Jobs considered when computing dashboard statistics
STATS_WINDOW_SIZE = 50

# ==============================================================================
# SCHEDULING
# ==============================================================================

# Full sync twice a day (UTC)
SYNC_CRON = "0 */12 * * *"

# Retry sweep for failed jobs every hour
RETRY_CRON = "0 * * * *"
