"""Configuration settings for the upload service."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from chunkstore.checksum_validator import ensure_algorithm
from common.constants import (
    CHUNKS_DIR_NAME,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHECKSUM_ALGORITHM,
    DEFAULT_DATABASE_PATH,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_STORAGE_ROOT,
    DEFAULT_TABULAR_EXTENSIONS,
    DEFAULT_TEXT_COLUMN_WIDTH,
    DEFAULT_WAREHOUSE_PATH,
    FILES_DIR_NAME,
)

ENV_PREFIX = "CHUNKLOAD_"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """
    Immutable process configuration, built once at startup and handed to
    each component's constructor.
    """
    storage_root: Path = Path(DEFAULT_STORAGE_ROOT)
    database_path: Path = Path(DEFAULT_DATABASE_PATH)
    warehouse_path: Path = Path(DEFAULT_WAREHOUSE_PATH)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    batch_size: int = DEFAULT_BATCH_SIZE
    text_column_width: int = DEFAULT_TEXT_COLUMN_WIDTH
    schema_sample_rows: Optional[int] = None
    tabular_extensions: Tuple[str, ...] = field(default=DEFAULT_TABULAR_EXTENSIONS)
    verify_checksum: bool = False
    checksum_algorithm: str = DEFAULT_CHECKSUM_ALGORITHM
    log_level: str = "INFO"

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")
        if self.text_column_width < 1:
            raise ValueError("text_column_width must be positive")
        if self.schema_sample_rows is not None and self.schema_sample_rows < 1:
            raise ValueError("schema_sample_rows must be positive when set")
        object.__setattr__(self, "checksum_algorithm", ensure_algorithm(self.checksum_algorithm))
        object.__setattr__(
            self,
            "tabular_extensions",
            tuple(ext if ext.startswith(".") else f".{ext}" for ext in (e.lower() for e in self.tabular_extensions)),
        )

    @property
    def chunks_dir(self) -> Path:
        return self.storage_root / CHUNKS_DIR_NAME

    @property
    def files_dir(self) -> Path:
        return self.storage_root / FILES_DIR_NAME

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from CHUNKLOAD_* environment variables.

        Raises:
            ValueError: If a numeric or algorithm value is invalid
        """
        env = os.environ if environ is None else environ

        def get(name: str, default=None):
            return env.get(f"{ENV_PREFIX}{name}", default)

        storage_root = Path(get("STORAGE_ROOT", DEFAULT_STORAGE_ROOT))
        sample_rows = get("SCHEMA_SAMPLE_ROWS")
        extensions = get("TABULAR_EXTENSIONS")

        return cls(
            storage_root=storage_root,
            database_path=Path(get("DATABASE_PATH", str(storage_root / "metadata.db"))),
            warehouse_path=Path(get("WAREHOUSE_PATH", str(storage_root / "warehouse.db"))),
            host=get("HOST", DEFAULT_HOST),
            port=int(get("PORT", DEFAULT_PORT)),
            batch_size=int(get("BATCH_SIZE", DEFAULT_BATCH_SIZE)),
            text_column_width=int(get("TEXT_COLUMN_WIDTH", DEFAULT_TEXT_COLUMN_WIDTH)),
            schema_sample_rows=int(sample_rows) if sample_rows else None,
            tabular_extensions=(
                tuple(ext.strip() for ext in extensions.split(",") if ext.strip())
                if extensions else DEFAULT_TABULAR_EXTENSIONS
            ),
            verify_checksum=str(get("VERIFY_CHECKSUM", "false")).lower() in _TRUE_VALUES,
            checksum_algorithm=get("CHECKSUM_ALGORITHM", DEFAULT_CHECKSUM_ALGORITHM),
            log_level=get("LOG_LEVEL", "INFO").upper(),
        )
