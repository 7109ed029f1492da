"""Common configuration constants used across the keeper."""

# HTTP and Network Constants
DEFAULT_TIMEOUT = 30.0
"""Default HTTP request timeout in seconds"""

EXTENDED_TIMEOUT = 60.0
"""Extended timeout for slow endpoints (auction state is large)"""

# Retry Configuration
MAX_RETRIES = 5
"""Default maximum number of retry attempts"""

RETRY_BASE_DELAY = 1.0
"""Base delay for exponential backoff in seconds"""

RETRY_MAX_DELAY = 60.0
"""Maximum delay between retries in seconds"""

# Chain Defaults
DEFAULT_CHAIN_NAME = "casper-test"
"""Network name signed into every deploy header"""

DEFAULT_AUCTION_CONTRACT_HASH = (
    "hash-93d923e336b20a4c4ca14d592b60e5bd3fe330775618290104f9beb326db7ae2"
)
"""Auction system contract on casper-test"""

DEPLOY_TTL_MS = 30 * 60 * 1000
"""Deploy time-to-live (30 minutes)"""

DEPLOY_GAS_PRICE = 1
"""Gas price multiplier for deploys"""

MOTES_PER_CSPR = 1_000_000_000
"""1 CSPR = 10^9 motes"""

# Confirmation Polling
CONFIRMATION_TIMEOUT = 180.0
"""Maximum seconds to wait for a deploy to execute"""

CONFIRMATION_POLL_INTERVAL = 5.0
"""Seconds between execution status polls"""

# Payment Amounts (motes)
DELEGATION_PAYMENT = 2_500_000_000
"""Fixed cost of native delegate/undelegate (2.5 CSPR)"""

POOL_CALL_PAYMENT = 5_000_000_000
"""Gas for withdraw_for_delegation / confirm_* / deposit_from_undelegation (5 CSPR)"""

HARVEST_PAYMENT = 15_000_000_000
"""Gas for harvest_rewards (15 CSPR)"""

REGISTRY_UPDATE_PAYMENT = 100_000_000_000
"""Gas for one update_validators batch (100 CSPR)"""

# Delegation Lifecycle
MIN_DELEGATION_MOTES = 500 * MOTES_PER_CSPR
"""Network minimum delegation (500 CSPR)"""

# Unbonding Ledger
UNBONDING_ERAS = 7
"""Eras between undelegation and withdrawable funds"""

DEPOSITED_RETENTION_DAYS = 30
"""Deposited unbonding records are kept this long before cleanup"""

# Validator Registry
VALIDATOR_BATCH_SIZE = 30
"""Validator records per update_validators transaction"""

VALIDATOR_BATCH_DELAY = 2.0
"""Seconds to wait between update batches"""

PERFORMANCE_ERAS = 10
"""Number of past eras averaged into a performance score"""

NETWORK_P_AVG = 80
"""Network average performance passed to update_validators"""

NEUTRAL_DECAY_FACTOR = 100
"""Decay factor for active validators without telemetry"""

MIN_ACTIVE_DECAY_FACTOR = 80
"""Floor of the decay factor for active validators"""

# Persistence
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///data/keeper.db"
"""Keeper state database (ledger and pending operation queue)"""

# Claims and Resubmission
WORK_CLAIM_SECONDS = 900.0
"""Lease a keeper holds on an operation or unbonding while working on it"""

SUBMISSION_EXPIRY_MS = DEPLOY_TTL_MS + 5 * 60 * 1000
"""Age after which an unexecuted deploy can no longer run and may be resubmitted"""
