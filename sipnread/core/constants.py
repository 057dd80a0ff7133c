"""Constantes partagées (limites métier, codes HTTP utilisés par les tests)."""

# Limites des requêtes d'interprétation
MAX_IMAGES = 4
MAX_USER_SYMBOLS = 4
CLOCK_POSITION_MIN = 0
CLOCK_POSITION_MAX = 12
# Position canonique de l'anse de la tasse (repère fixe)
HANDLE_CLOCK_POSITION = 3

# Champs libres
PROFILE_NAME_MAX_LEN = 100
PROFILE_BIO_MAX_LEN = 500
MIN_COMPLETED_INTERPRETATION_LEN = 10
TRANSCRIPTION_ERROR_MAX_LEN = 500

# Redimensionnement client
RESIZE_MAX_WIDTH = 1024
RESIZE_MAX_HEIGHT = 1024
RESIZE_QUALITY = 80
RESIZE_MIME_TYPE = "image/jpeg"

ALLOWED_IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")

# Codes HTTP pour les assertions de tests (évite PLR2004)
TEST_HTTP_STATUS_OK = 200
TEST_HTTP_STATUS_UNAUTHORIZED = 401
TEST_HTTP_STATUS_FORBIDDEN = 403
TEST_HTTP_STATUS_NOT_FOUND = 404
TEST_HTTP_STATUS_CONFLICT = 409
TEST_HTTP_STATUS_UNPROCESSABLE = 422
TEST_HTTP_STATUS_TOO_MANY_REQUESTS = 429
TEST_HTTP_STATUS_BAD_GATEWAY = 502
TEST_HTTP_STATUS_SERVICE_UNAVAILABLE = 503
