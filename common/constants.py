"""Project-wide constants (e.g., CHUNK_SIZE, default worker addresses)."""

CHUNK_SIZE_BYTES: int = 128 * 1024  # 128 KiB default ingestion chunk
XHR_CHUNK_SIZE_BYTES: int = 1 * 1024 * 1024
MAX_FILE_SIZE_BYTES: int = 300 * 1024 * 1024

DEFAULT_TRANSCODER: str = (
    "/dns4/bootstrap.paratii.video/tcp/443/wss/ipfs/"
    "QmeUmy6UtuEs91TH6bKnfuU1Yvp63CkZJWm624MjBEBazW"
)
TRANSCODER_DROP_URL: str = "https://uploader.paratii.video/api/v1/transcode"
DB_PROVIDER: str = "https://db.paratii.video/api/v1/"

DEFAULT_AUTHOR: str = "0x"
MAX_ACTIVE_JOBS: int = 1024

KUBO_API_URL: str = "http://127.0.0.1:5001"
PROTOCOL_TOPIC_PREFIX: str = "vidswarm"

# Placeholder emitted by transcode('') so listeners can be smoke-tested offline.
EMPTY_HASH_RESULT: dict = {"test": 1}
