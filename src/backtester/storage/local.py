"""Stores persisted as JSON files under a local directory.

Layout::

    {root}/market_data/{SYMBOL}.json   row key -> bar
    {root}/signals/{SYMBOL}.json       row key -> signal

File names are the percent-encoded symbol, so a symbol such as ``BRK/B`` or
``../x`` always maps to a single file inside the directory. Files are
rewritten atomically (write to a temporary file, then replace).
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Callable, Generic, TypeVar
from urllib.parse import quote, unquote

from pydantic import TypeAdapter, ValidationError

from backtester.exceptions import StorageError
from backtester.storage.base import MarketDataStore, SignalStore
from backtester.types import Bar, Signal, SignalKeyMode

DEFAULT_STORE_DIR = Path("~/.trading/store")

RowT = TypeVar("RowT", Bar, Signal)


class _JsonRowFiles(Generic[RowT]):
    """One JSON document per symbol inside ``directory``."""

    def __init__(self, directory: Path, row_type: type[RowT]) -> None:
        self.directory = directory
        self._adapter = TypeAdapter(dict[str, row_type])

    def path(self, symbol: str) -> Path:
        return self.directory / f"{quote(symbol, safe='')}.json"

    def load(self, symbol: str) -> dict[str, RowT]:
        path = self.path(symbol)
        if not path.exists():
            return {}
        try:
            return self._adapter.validate_json(path.read_bytes())
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e
        except ValidationError as e:
            raise StorageError(f"Corrupt store file {path}: {e}") from e

    def save(self, symbol: str, rows: dict[str, RowT]) -> None:
        path = self.path(symbol)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(self._adapter.dump_json(rows, indent=2))
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def symbols(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(unquote(p.stem) for p in self.directory.glob("*.json"))


class LocalMarketDataStore(MarketDataStore):
    """Market data store persisted under ``{root}/market_data``.

    :param root: Store root directory (``~`` is expanded).
    """

    def __init__(self, root: str | Path = DEFAULT_STORE_DIR) -> None:
        self.root = Path(root).expanduser()
        self._files = _JsonRowFiles(self.root / "market_data", Bar)

    def _load(self, symbol: str) -> dict[str, Bar]:
        return self._files.load(symbol)

    def _save(self, symbol: str, rows: dict[str, Bar]) -> None:
        self._files.save(symbol, rows)

    def symbols(self) -> list[str]:
        return self._files.symbols()


class LocalSignalStore(SignalStore):
    """Signal store persisted under ``{root}/signals``.

    :param root: Store root directory (``~`` is expanded).
    :param key_mode: Row key scheme.
    :param clock: Wall-clock time source used by the timestamped scheme.
    """

    def __init__(
        self,
        root: str | Path = DEFAULT_STORE_DIR,
        key_mode: SignalKeyMode = SignalKeyMode.TIMESTAMPED,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(key_mode, clock)
        self.root = Path(root).expanduser()
        self._files = _JsonRowFiles(self.root / "signals", Signal)

    def _load(self, symbol: str) -> dict[str, Signal]:
        return self._files.load(symbol)

    def _save(self, symbol: str, rows: dict[str, Signal]) -> None:
        self._files.save(symbol, rows)

    def symbols(self) -> list[str]:
        return self._files.symbols()
