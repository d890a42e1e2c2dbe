from __future__ import annotations

# GH / API operations
GH_TIMEOUT_SECONDS = 60.0
GH_UPLOAD_TIMEOUT_SECONDS = 15 * 60.0

# Per-platform binary compile
BUILD_TIMEOUT_SECONDS = 60 * 60.0

# Per-platform image build + push, and manifest list assembly
IMAGE_BUILD_TIMEOUT_SECONDS = 60 * 60.0
IMAGE_MANIFEST_TIMEOUT_SECONDS = 5 * 60.0

# helm package / push / show
HELM_TIMEOUT_SECONDS = 5 * 60.0

# Idempotent GH read retry policy
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0
