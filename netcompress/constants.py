# =============================================================================
# netcompress -- Constants
# =============================================================================
#
# Defaults for the decision engine, the speed probe and the executor.
# All times are milliseconds, all sizes bytes, all speeds Kbps.
# =============================================================================

# -- Static compression thresholds (bytes) -----------------------------------

DEFAULT_THRESHOLDS = {
    "slow-2g": 100,
    "2g": 500,
    "3g": 700,
    "4g": 2048,
}

# Nominal speed per network class, used when no live measurement exists
NOMINAL_SPEED_KBPS = {
    "4g": 10_000.0,
    "3g": 2_000.0,
    "2g": 100.0,
    "slow-2g": 30.0,
}

DEFAULT_NETWORK_CLASS = "4g"

# -- Performance optimization -------------------------------------------------

PERFORMANCE_THRESHOLD_MS = 1.0
SPEED_TEST_INTERVAL_MS = 30_000
MIN_SPEED_TEST_SAMPLES = 3
AGGRESSIVE_MODE_THRESHOLD_KBPS = 5.0  # reserved, not read by any decision

CRITICAL_TRANSMISSION_MS = 10.0
DEFAULT_ESTIMATED_RATIO = 0.5

# -- Dynamic threshold --------------------------------------------------------

DYNAMIC_THRESHOLD_FLOOR = 10  # bytes
DYNAMIC_BUDGET_SHARE = 0.5
BLEND_BASELINE_WEIGHT = 0.3
BLEND_DYNAMIC_WEIGHT = 0.7

# -- Sample store -------------------------------------------------------------

SAMPLE_RETENTION_MS = 10 * 60 * 1000  # 10 minutes
SAMPLE_DECAY_MS = 5 * 60 * 1000       # 5 minute half-life

# -- Executor -----------------------------------------------------------------

MIN_COMPRESSION_SIZE = 50           # below this, skip unless forced
MIN_COMPRESSION_RATIO = 0.1
MAX_COMPRESSION_SIZE = 1024 * 1024  # 1 MiB
HEURISTIC_MIN_SIZE = 100
COMPRESSION_LEVEL = 6
ALGORITHM_NONE = "none"

# -- Speed probe --------------------------------------------------------------

PROBE_TEST_URL = "/api/speed-test"
PROBE_TEST_SIZE = 1024
PROBE_LATENCY_SIZE = 64
PROBE_LATENCY_COUNT = 5
PROBE_LATENCY_GAP_MS = 50
PROBE_CONCURRENT_FETCHES = 3
PROBE_REQUEST_TIMEOUT_MS = 5_000
PROBE_ROUND_TIMEOUT_MS = 10_000
PROBE_FALLBACK_LATENCY_MS = 100.0
PROBE_FALLBACK_SPEED_KBPS = 1.0
PROBE_HISTORY_SIZE = 50
PROBE_SUMMARY_WINDOW = 10

# -- Quality scoring ----------------------------------------------------------
#
# (lower bound, deduction) pairs, checked top-down.

QUALITY_SPEED_PENALTIES = ((5000.0, 0), (2000.0, 10), (1000.0, 20), (100.0, 40))
QUALITY_SPEED_FLOOR_PENALTY = 60

# (upper bound, deduction) pairs, value must be strictly below the bound
QUALITY_LATENCY_PENALTIES = ((200.0, 0), (500.0, 10), (1000.0, 20))
QUALITY_LATENCY_CEILING_PENALTY = 30

QUALITY_LOSS_PENALTIES = ((1.0, 0), (5.0, 10), (10.0, 20))
QUALITY_LOSS_CEILING_PENALTY = 30

QUALITY_EXCELLENT_SCORE = 80
QUALITY_GOOD_SCORE = 60
QUALITY_FAIR_SCORE = 40
QUALITY_POOR_SCORE = 20

# -- Network telemetry fallback -----------------------------------------------

FALLBACK_DOWNLINK_MBPS = 10.0
FALLBACK_RTT_MS = 100.0
