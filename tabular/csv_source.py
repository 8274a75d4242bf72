"""Streams a UTF-8, comma-delimited file with a header row."""

import csv
from pathlib import Path
from typing import Iterator, List

from common.exceptions import TabularFormatError

# utf-8-sig tolerates the BOM spreadsheet exports prepend
DEFAULT_ENCODING = 'utf-8-sig'


class CsvSource:
    """
    Re-readable view over a CSV file.

    Each call to iter_rows() opens the file again, so schema inference and
    loading can both stream the data without holding it in memory.
    """

    def __init__(self, path: Path, encoding: str = DEFAULT_ENCODING, delimiter: str = ','):
        self.path = Path(path)
        self.encoding = encoding
        self.delimiter = delimiter

    def read_header(self) -> List[str]:
        """
        Return the first row of the file.

        Raises:
            TabularFormatError: If the file is empty or cannot be decoded
        """
        for row in self._iter_all():
            return row
        raise TabularFormatError(f"No header row in {self.path.name}")

    def iter_rows(self) -> Iterator[List[str]]:
        """Yield data rows (header excluded, blank lines skipped)."""
        rows = self._iter_all()
        next(rows, None)
        yield from rows

    def _iter_all(self) -> Iterator[List[str]]:
        try:
            with open(self.path, 'r', encoding=self.encoding, newline='') as f:
                reader = csv.reader(f, delimiter=self.delimiter)
                for row in reader:
                    if row:
                        yield row
        except UnicodeDecodeError as e:
            raise TabularFormatError(f"{self.path.name} is not valid UTF-8: {e}") from e
        except csv.Error as e:
            raise TabularFormatError(f"Malformed CSV in {self.path.name}: {e}") from e
        except OSError as e:
            raise TabularFormatError(f"Cannot read {self.path.name}: {e}") from e
