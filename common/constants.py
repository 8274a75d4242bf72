"""Project-wide constants (storage layout, batch sizes, type limits)."""

DEFAULT_STORAGE_ROOT: str = "./data"
DEFAULT_DATABASE_PATH: str = "./data/metadata.db"
DEFAULT_WAREHOUSE_PATH: str = "./data/warehouse.db"

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000

CHUNKS_DIR_NAME: str = "chunks"
FILES_DIR_NAME: str = "files"
CHUNK_FILE_SUFFIX: str = ".chk"
MANIFEST_FILE_NAME: str = "manifest.json"

READ_PIECE_SIZE_BYTES: int = 64 * 1024  # 64 KiB streaming copy buffer

MAX_UPLOAD_IDENTITY_LENGTH: int = 128

DEFAULT_BATCH_SIZE: int = 1000
DEFAULT_TEXT_COLUMN_WIDTH: int = 255
DEFAULT_TABULAR_EXTENSIONS: tuple = (".csv",)
DEFAULT_CHECKSUM_ALGORITHM: str = "md5"

# Signed 64-bit range accepted for INTEGER columns
INTEGER_MIN: int = -(2 ** 63)
INTEGER_MAX: int = 2 ** 63 - 1

# Completed identities remembered so late duplicate chunks are ignored;
# older ones fall back to the metadata store check
MAX_COMPLETED_TOMBSTONES: int = 10000
