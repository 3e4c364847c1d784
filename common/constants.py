"""
Application-wide constants for the civic complaints backend.

This module contains all shared constants used across the application.
"""

# ========= Service Configuration =========
# Service configuration: service_name -> (module_path, port)
SERVICES = {
    "complaints": ("services.complaints.main", 20010),
    "user_management": ("services.user_management.main", 20011),
}

# ========= Auth Configuration =========
# Algorithms accepted per verification mode
HMAC_ALGORITHMS = ["HS256"]
JWKS_ALGORITHMS = ["RS256"]

# Claims read from the bearer token; "id" is accepted for legacy tokens
SUBJECT_CLAIMS = ("sub", "id")
ROLE_CLAIM = "role"
DEPARTMENT_CLAIM = "department"

# Seconds a fetched JWKS document is reused before refetching
JWKS_CACHE_TTL = 600

# Header carrying the identity provider's webhook secret
IDENTITY_WEBHOOK_HEADER = "X-Identity-Webhook-Secret"

# ========= Blob Storage =========
# Folders used in the blob store
COMPLAINT_IMAGE_FOLDER = "civic_issues"
VOICE_NOTE_FOLDER = "civic_issues/voice_notes"
PROOF_FOLDER = "civic_issues/proofs"

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
ALLOWED_AUDIO_TYPES = {
    "audio/mpeg",
    "audio/mp4",
    "audio/ogg",
    "audio/wav",
    "audio/webm",
    "video/webm",  # browsers record voice notes as webm
}

# ========= Feedback =========
MIN_RATING = 1
MAX_RATING = 5

# ========= Audit =========
AUDIT_EVENT_COMPLAINT = "complaint"
AUDIT_EVENT_USER_MANAGEMENT = "user_management"
