"""
Constants and schema parameters for the TRUIDA system.

This module centralizes the values that must be identical across every
component of a deployment: the embedding schema, the checkpoint order and
the identifiers used for system actors.
"""

from typing import Final, Tuple

# =============================================================================
# Biometric Schema
# =============================================================================

# Face embedding dimension; every stored embedding has exactly this length
EMBEDDING_DIM: Final[int] = 384

# Grid used by the default image extractor (rows x cols == EMBEDDING_DIM)
EMBEDDING_GRID_SHAPE: Final[Tuple[int, int]] = (24, 16)

# Digest algorithm for exact-match biometric keys (256-bit)
DIGEST_ALGORITHM: Final[str] = "sha256"

# Length of the hex digest produced by DIGEST_ALGORITHM
DIGEST_HEX_LENGTH: Final[int] = 64

# Number of digest characters written to diagnostic logs
LOGGED_DIGEST_PREFIX: Final[int] = 12

# =============================================================================
# Checkpoints
# =============================================================================

# Clearance order; each checkpoint requires all earlier ones
CHECKPOINT_ORDER: Final[Tuple[str, ...]] = ("security", "immigration", "boarding")

# Actor recorded on log entries produced without a staff member
SYSTEM_STAFF_ID: Final[str] = "SYSTEM"

# =============================================================================
# Identifiers
# =============================================================================

# Prefix of generated passenger ids
PASSENGER_ID_PREFIX: Final[str] = "TRU-"

# =============================================================================
# Staff Dashboard
# =============================================================================

# Window of log entries reported as recent activity (seconds)
RECENT_ACTIVITY_WINDOW_SECONDS: Final[int] = 3600

# Maximum number of recent activity entries
RECENT_ACTIVITY_LIMIT: Final[int] = 10

# Label used when a log entry references a deleted passenger
UNKNOWN_PASSENGER_LABEL: Final[str] = "Unknown Passenger"

# =============================================================================
# File and Directory Constants
# =============================================================================

DEFAULT_PASSENGER_STORE_FILE: Final[str] = "passengers.json"
DEFAULT_ACCESS_LOG_FILE: Final[str] = "access_log.json"
DEFAULT_EXPORT_BASENAME: Final[str] = "truida_access_log"

# Version tag written into persisted store documents
STORE_FORMAT_VERSION: Final[int] = 1
