"""
Application constants.

Centralized constants for the indexer pipeline.
"""

# ========================================================================
# TIME
# ========================================================================

HOUR = 3600  # Indexers advance in full-hour steps
DEFAULT_SAFETY_MARGIN_SECONDS = 15 * 60  # Skip blocks that may still reorg

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# Blockchain operation timeouts (in seconds)
BLOCKCHAIN_TIMEOUT = 30.0  # Per-attempt timeout for a single RPC call
BLOCKCHAIN_RPC_TIMEOUT = 30  # RPC provider HTTP timeout

# Blockchain retry settings
BLOCKCHAIN_MAX_RETRIES = 5  # Maximum attempts for a single RPC call
BLOCKCHAIN_RETRY_DELAY_BASE = 1.0  # Base delay in seconds for exponential backoff
BLOCKCHAIN_RETRY_DELAY_MAX = 30.0  # Backoff ceiling in seconds

# RPC rate limiting
DEFAULT_CALLS_PER_MINUTE = 600

# JSON-RPC error codes that are worth retrying
TRANSIENT_RPC_ERROR_CODES = frozenset({
    -32000,  # header not found / missing trie node on lagging nodes
    -32005,  # limit exceeded
    -32603,  # internal error
    429,
})
RPC_EXECUTION_REVERTED_CODE = 3

# HTTP statuses that are worth retrying
TRANSIENT_HTTP_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})

# Binary search over block timestamps
BLOCK_SEARCH_MAX_PROBES = 64

# ========================================================================
# MULTICALL
# ========================================================================

# Multicall3 is deployed at the same address on most EVM chains
MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"
MULTICALL_DEFAULT_BATCH_SIZE = 150

# ========================================================================
# INDEXER LOOPS
# ========================================================================

INDEXER_TICK_INTERVAL = 10.0  # Idle wait between cycles (seconds)
INDEXER_ERROR_BACKOFF = 30.0  # Wait after a failed cycle (seconds)
INDEXER_PROGRESS_LOG_EVERY = 24  # Log progress every N timestamps

# ========================================================================
# SYNC OPTIMIZER
# ========================================================================

SYNC_MIN_BATCH_WIDTH = 1
SYNC_MAX_BATCH_WIDTH = 168  # One week of hours
SYNC_REALTIME_THRESHOLD = 3  # Hours behind that still count as real-time
SYNC_TARGET_CYCLE_SECONDS = 60.0
SYNC_MAX_CYCLE_BUDGET_SHARE = 0.5  # Share of a minute's provider budget per cycle

MAX_TIMESTAMPS_TO_PROCESS_AT_ONCE = 100

# ========================================================================
# PRICES
# ========================================================================

COINGECKO_API_URL = "https://api.coingecko.com/api/v3"
COINGECKO_CALLS_PER_MINUTE = 10
COINGECKO_MAX_RANGE_SECONDS = 80 * 24 * HOUR  # Hourly granularity limit per request

# ========================================================================
# DECIMALS
# ========================================================================

VALUE_DECIMAL_PLACES = 18
