"""
===============================================================================
  Freshness: card cache keyed by (instrument, analysis kind, freshness key)
===============================================================================
  A card computed from one session's closing data is reused until that data
  is superseded.  The freshness key is the date of the last completed
  session, so a new key appears at every close and old records simply stop
  being looked up (they are kept as history, never overwritten).

  Quick-reject cards carry an extra expiry (next open, or the session close,
  per FreshnessPolicy) because the live price can move a stock back through
  a gate intraday.  Full cards have no expiry inside their key.

  Stores:
    InMemoryCardStore  dict, for tests and single-process use
    JsonCardStore      one JSON file, atomic tmp + os.replace writes
===============================================================================
"""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Union

import config as cfg
from utils import market_hours
from utils.logger import get_logger
from .models import AnalysisCard

log = get_logger("freshness")

CardKey = tuple[str, str, str]  # (instrument_id, analysis_kind, freshness_key)
ExpiryMode = Literal["next_open", "session_close"]


@dataclass(frozen=True)
class CachedCard:
    card: AnalysisCard
    stored_at: datetime
    valid_until: Optional[datetime] = None  # None: valid for the whole key

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and now >= self.valid_until

    def to_dict(self) -> dict:
        return {
            "card": self.card.to_dict(),
            "stored_at": self.stored_at.isoformat(),
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CachedCard":
        valid_until = data.get("valid_until")
        return cls(
            card=AnalysisCard.from_dict(data["card"]),
            stored_at=datetime.fromisoformat(data["stored_at"]),
            valid_until=datetime.fromisoformat(valid_until) if valid_until else None,
        )


@dataclass(frozen=True)
class FreshnessPolicy:
    quick_reject_expiry: ExpiryMode = "next_open"

    def __post_init__(self):
        if self.quick_reject_expiry not in ("next_open", "session_close"):
            raise ValueError(f"Unknown quick-reject expiry: {self.quick_reject_expiry!r}")

    def valid_until(self, card: AnalysisCard, now: datetime) -> Optional[datetime]:
        if not card.is_quick_reject:
            return None
        if self.quick_reject_expiry == "session_close":
            return market_hours.get_session_close_validity(now)
        return market_hours.get_next_market_open(now)


# ═════════════════════════════════════════════════════════════════════════════
#  STORES
# ═════════════════════════════════════════════════════════════════════════════

class CardStore(ABC):
    """Keyed card persistence.  Upserts are last-write-wins."""

    @abstractmethod
    def get(self, key: CardKey) -> Optional[CachedCard]:
        pass

    @abstractmethod
    def upsert(self, key: CardKey, record: CachedCard) -> None:
        pass

    @abstractmethod
    def history(self, instrument_id: str, analysis_kind: str) -> list[CachedCard]:
        """All records for one instrument and kind, oldest key first."""
        pass


class InMemoryCardStore(CardStore):
    def __init__(self):
        self._records: dict[CardKey, CachedCard] = {}

    def get(self, key: CardKey) -> Optional[CachedCard]:
        return self._records.get(key)

    def upsert(self, key: CardKey, record: CachedCard) -> None:
        self._records[key] = record

    def history(self, instrument_id: str, analysis_kind: str) -> list[CachedCard]:
        keys = sorted(k for k in self._records if k[0] == instrument_id and k[1] == analysis_kind)
        return [self._records[k] for k in keys]

    def __len__(self) -> int:
        return len(self._records)


def _encode_key(key: CardKey) -> str:
    return "|".join(key)


def _decode_key(raw: str) -> CardKey:
    instrument_id, analysis_kind, fkey = raw.rsplit("|", 2)
    return instrument_id, analysis_kind, fkey


class JsonCardStore(CardStore):
    """
    All records in a single JSON document::

        {"records": {"<instrument>|<kind>|<key>": {card, stored_at, valid_until}}}

    Unreadable or corrupt files are logged and read as empty, so the caller
    recomputes instead of failing.  Writes go to a temp file in the same
    directory and are swapped in with ``os.replace``.
    """

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path) if path is not None else cfg.CARD_STORE_PATH
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                doc = json.load(f)
            records = doc.get("records", {})
            if not isinstance(records, dict):
                raise ValueError("'records' is not an object")
            return records
        except (OSError, ValueError, AttributeError) as e:
            log.warning(f"Card store {self.path} unreadable, treating as empty: {e}")
            return {}

    def _save(self, records: dict[str, Any]) -> None:
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"records": records}, f, indent=2, default=str, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            log.warning(f"Failed to persist card store {self.path}: {e}")

    def get(self, key: CardKey) -> Optional[CachedCard]:
        raw = self._load().get(_encode_key(key))
        if raw is None:
            return None
        try:
            return CachedCard.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            log.warning(f"Corrupt card record {_encode_key(key)}: {e}")
            return None

    def upsert(self, key: CardKey, record: CachedCard) -> None:
        records = self._load()
        records[_encode_key(key)] = record.to_dict()
        self._save(records)

    def history(self, instrument_id: str, analysis_kind: str) -> list[CachedCard]:
        out = []
        records = self._load()
        for raw_key in sorted(records):
            inst, kind, _ = _decode_key(raw_key)
            if inst != instrument_id or kind != analysis_kind:
                continue
            try:
                out.append(CachedCard.from_dict(records[raw_key]))
            except (KeyError, TypeError, ValueError) as e:
                log.warning(f"Skipping corrupt card record {raw_key}: {e}")
        return out


# ═════════════════════════════════════════════════════════════════════════════
#  CONTROLLER
# ═════════════════════════════════════════════════════════════════════════════

class FreshnessController:
    def __init__(self, store: CardStore, policy: Optional[FreshnessPolicy] = None):
        self.store = store
        self.policy = policy or FreshnessPolicy(cfg.QUICK_REJECT_EXPIRY)

    @staticmethod
    def current_key(now: Optional[datetime] = None) -> str:
        return market_hours.freshness_key(now)

    def resolve(
        self,
        instrument_id: str,
        analysis_kind: str,
        now: Optional[datetime] = None,
    ) -> Optional[CachedCard]:
        """Cached card for the current key, or None if absent or expired."""
        now = market_hours.as_utc(now or market_hours.utcnow())
        fkey = self.current_key(now)
        record = self.store.get((instrument_id, analysis_kind, fkey))
        if record is None:
            log.debug(f"{instrument_id}/{analysis_kind}: miss for key {fkey}")
            return None
        if record.is_expired(now):
            log.debug(
                f"{instrument_id}/{analysis_kind}: quick reject for {fkey} "
                f"expired at {record.valid_until.isoformat()}"
            )
            return None
        return record

    def commit(
        self,
        instrument_id: str,
        analysis_kind: str,
        freshness_key: str,
        card: AnalysisCard,
        now: Optional[datetime] = None,
    ) -> CachedCard:
        now = market_hours.as_utc(now or market_hours.utcnow())
        record = CachedCard(
            card=card,
            stored_at=now,
            valid_until=self.policy.valid_until(card, now),
        )
        self.store.upsert((instrument_id, analysis_kind, freshness_key), record)
        log.debug(f"{instrument_id}/{analysis_kind}: stored card for {freshness_key}")
        return record
