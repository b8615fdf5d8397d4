"""Application settings constants."""

from __future__ import annotations

# Failed logins allowed per client before lockout.
MAX_LOGIN_ATTEMPTS = 5

# Lockout window length; a window older than this is discarded.
LOCKOUT_DURATION_SECONDS = 15 * 60

# Fraction of a query word's length tolerated as edit distance (minimum 1).
FUZZY_ERROR_RATE = 0.2

# Skip edit distance when word lengths differ by more than this. None disables the cutoff.
FUZZY_MAX_LENGTH_DELTA = 2

# Normalized queries this short or shorter only match as substrings.
SHORT_QUERY_LENGTH = 2

# When True a query word also matches a text word it contains.
WORD_CONTAINMENT_BIDIRECTIONAL = False

# Password hashing parameters (PBKDF2-HMAC).
PBKDF2_DIGEST = "sha512"
PBKDF2_ITERATIONS = 10000
PBKDF2_KEY_LENGTH = 64
SALT_BYTES = 16

# Seeded as a legacy plain-text credential when no admin record exists.
DEFAULT_ADMIN_PASSWORD = "admin123"

# QR share-link rendering.
QR_BOX_SIZE = 10
QR_BORDER = 2
QR_FILL_COLOR = "#000000"
QR_BACK_COLOR = "#ffffff"
