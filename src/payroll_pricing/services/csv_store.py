"""
CSV-backed table - the persistence layer for every store in the package.

Each table is one CSV file held in memory as a string-typed DataFrame and
written back in full on every change.
"""
import logging
import threading
from pathlib import Path
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)


class CsvTable:
    """A single table with an integer ``id`` primary key."""

    def __init__(self, path: Path, columns: list[str]):
        self.path = Path(path)
        self.columns = list(columns)
        self._lock = threading.RLock()
        self.df = self._load()

    def _load(self) -> pd.DataFrame:
        if not self.path.exists():
            return pd.DataFrame(columns=self.columns, dtype=str)

        df = pd.read_csv(self.path, dtype=str, keep_default_na=False).fillna('')
        # Strip all strings and headers
        df.columns = [c.strip() for c in df.columns]
        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()
        for col in self.columns:
            if col not in df.columns:
                df[col] = ''
        logger.debug("Loaded %d rows from %s", len(df), self.path)
        return df[self.columns]

    def reload(self):
        """Re-read the file from disk."""
        with self._lock:
            self.df = self._load()

    def save(self):
        """Write the table back to CSV."""
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.df.to_csv(self.path, index=False)

    def __len__(self) -> int:
        return len(self.df)

    def rows(self) -> list[dict]:
        return self.df.to_dict(orient='records')

    def find(self, **criteria) -> list[dict]:
        """Rows whose columns equal every given value (compared as strings)."""
        mask = pd.Series(True, index=self.df.index)
        for col, value in criteria.items():
            mask &= self.df[col] == str(value)
        return self.df[mask].to_dict(orient='records')

    def get(self, row_id: int) -> Optional[dict]:
        matches = self.find(id=row_id)
        return matches[0] if matches else None

    def next_id(self) -> int:
        if self.df.empty:
            return 1
        return int(pd.to_numeric(self.df['id'], errors='coerce').fillna(0).max()) + 1

    def insert(self, row: dict) -> dict:
        """Append a row, assigning the next id when the row has none."""
        with self._lock:
            row = {col: str(row.get(col, '') if row.get(col) is not None else '') for col in self.columns}
            if not row['id']:
                row['id'] = str(self.next_id())
            elif self.get(int(row['id'])) is not None:
                raise ValueError(f"Row with id {row['id']} already exists in {self.path.name}")
            new = pd.DataFrame([row], columns=self.columns)
            self.df = new if self.df.empty else pd.concat([self.df, new], ignore_index=True)
            self.save()
            return row

    def replace(self, row_id: int, row: dict) -> Optional[dict]:
        """Overwrite the row with ``row_id``; returns None when it does not exist."""
        with self._lock:
            mask = self.df['id'] == str(row_id)
            if not mask.any():
                return None
            values = {col: str(row.get(col, '') if row.get(col) is not None else '') for col in self.columns}
            values['id'] = str(row_id)
            for col, value in values.items():
                self.df.loc[mask, col] = value
            self.save()
            return values

    def delete(self, **criteria) -> int:
        """Remove every row matching ``criteria``; returns the number removed."""
        with self._lock:
            mask = pd.Series(True, index=self.df.index)
            for col, value in criteria.items():
                mask &= self.df[col] == str(value)
            removed = int(mask.sum())
            if removed:
                self.df = self.df[~mask].reset_index(drop=True)
                self.save()
            return removed

    def snapshot(self) -> pd.DataFrame:
        """Copy of the current contents, for ``restore``."""
        with self._lock:
            return self.df.copy()

    def restore(self, df: pd.DataFrame):
        """Put back a snapshot and write it to disk."""
        with self._lock:
            self.df = df
            self.save()
