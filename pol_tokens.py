"""
Proof-of-Life — Token Ledger
=============================
Issues, validates, expires and revokes short-lived proof-of-life tokens.

Token lifecycle:
  active --(now >= expires_at, seen on read)--> expired
  active --(revoke)--------------------------> revoked

Tokens are never deleted: the ledger is append-only for audit/history.
Expiry is evaluated lazily at read time; there is no background sweep.

Token id format: POL-YYYYMMDD-HHMMSS-XXXX (UTC issue time + random suffix)
"""

import json
import math
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pol_types import Token, TOKEN_ACTIVE, TOKEN_EXPIRED, TOKEN_REVOKED
from pol_utils_core import merge_config, now_ms, setup_logger

_log = setup_logger("TokenLedger")


def format_token_id(issued_at_ms: int, prefix: str = "POL") -> str:
    stamp = datetime.fromtimestamp(issued_at_ms / 1000, tz=timezone.utc)
    rand = uuid.uuid4().hex[:4].upper()
    return f"{prefix}-{stamp.strftime('%Y%m%d')}-{stamp.strftime('%H%M%S')}-{rand}"


def remaining_time(token: Optional[Token], now: Optional[int] = None) -> dict:
    """Time left on a token; an absent token reads as already expired."""
    if token is None:
        return {"minutes": 0, "seconds": 0, "total_seconds": 0,
                "expired": True, "formatted": "0:00"}

    now = now_ms() if now is None else now
    remaining = max(0, token.expires_at - now)
    total_seconds = math.ceil(remaining / 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return {
        "minutes": minutes,
        "seconds": seconds,
        "total_seconds": total_seconds,
        "expired": remaining <= 0,
        "formatted": f"{minutes}:{seconds:02d}",
    }


class TokenLedger:
    """Append-only token store with a per-identity "current" pointer."""

    def __init__(self, config: Optional[dict] = None,
                 clock: Callable[[], int] = now_ms,
                 audit=None):
        cfg = merge_config({"tokens": config or {}})["tokens"]
        self.validity_ms = int(cfg["validity_ms"])
        self.prefix = str(cfg["prefix"])
        self.version = str(cfg["version"])
        self.clock = clock
        self.audit = audit

        self._tokens: List[Token] = []
        self._index: Dict[str, Token] = {}
        self._active: Dict[str, str] = {}  # identity -> token_id
        self._lock = threading.Lock()

    def _audit(self, event: str, token: Token) -> None:
        if self.audit is not None:
            self.audit.add_entry({
                "event": event,
                "token_id": token.token_id,
                "identity": token.identity,
                "status": token.status,
            })

    def _expire_locked(self, token: Token) -> None:
        token.status = TOKEN_EXPIRED
        if self._active.get(token.identity) == token.token_id:
            del self._active[token.identity]

    # ── Lifecycle ─────────────────────────────────────────────

    def issue(self, identity: str, confidence_score: float,
              session_id: str, challenge_type: str) -> Token:
        """Issue a token after a passing verdict; supersedes the current one."""
        now = self.clock()
        with self._lock:
            token_id = format_token_id(now, self.prefix)
            while token_id in self._index:
                token_id = format_token_id(now, self.prefix)

            token = Token(
                token_id=token_id,
                identity=identity,
                issued_at=now,
                expires_at=now + self.validity_ms,
                confidence_score=confidence_score,
                session_id=session_id,
                challenge_type=challenge_type,
                status=TOKEN_ACTIVE,
                version=self.version,
            )
            self._tokens.append(token)
            self._index[token_id] = token
            self._active[identity] = token_id

        _log.info("Issued %s to %s (score %.2f)", token_id, identity, confidence_score)
        self._audit("token_issued", token)
        return token

    def validate(self, token_id: str) -> dict:
        """Structured validity check; never raises for an invalid token."""
        now = self.clock()
        expired_now = None
        with self._lock:
            token = self._index.get(token_id)
            if token is None:
                return {"valid": False, "reason": "Token not found."}
            if token.status == TOKEN_REVOKED:
                return {"valid": False, "reason": "Token has been revoked."}
            if token.status == TOKEN_EXPIRED or now >= token.expires_at:
                if token.status != TOKEN_EXPIRED:
                    self._expire_locked(token)
                    expired_now = token
                result = {"valid": False, "reason": "Token has expired."}
            else:
                remaining = token.expires_at - now
                result = {
                    "valid": True,
                    "token": token,
                    "remaining_ms": remaining,
                    "remaining_seconds": math.ceil(remaining / 1000),
                }

        if expired_now is not None:
            self._audit("token_expired", expired_now)
        return result

    def revoke(self, token_id: str) -> bool:
        """Revoke a token. Returns False if the id is unknown."""
        now = self.clock()
        with self._lock:
            token = self._index.get(token_id)
            if token is None:
                return False
            token.status = TOKEN_REVOKED
            token.revoked_at = now
            if self._active.get(token.identity) == token_id:
                del self._active[token.identity]

        _log.info("Revoked %s", token_id)
        self._audit("token_revoked", token)
        return True

    def remaining_time(self, token: Optional[Token]) -> dict:
        return remaining_time(token, self.clock())

    # ── Queries ───────────────────────────────────────────────

    def get_token(self, token_id: str) -> Optional[Token]:
        with self._lock:
            return self._index.get(token_id)

    def get_active_token(self, identity: str) -> Optional[Token]:
        """Current token for `identity`, or None if absent/expired/revoked."""
        now = self.clock()
        with self._lock:
            token_id = self._active.get(identity)
            token = self._index.get(token_id) if token_id else None
            if token is None or token.status != TOKEN_ACTIVE:
                return None
            if now >= token.expires_at:
                self._expire_locked(token)
                expired = token
            else:
                return token
        self._audit("token_expired", expired)
        return None

    def get_history(self, identity: str, limit: int = 10) -> List[dict]:
        """Most recent first; active tokens past expiry read as expired."""
        now = self.clock()
        with self._lock:
            tokens = [t for t in self._tokens if t.identity == identity]
        tokens.sort(key=lambda t: t.issued_at, reverse=True)

        history = []
        for t in tokens[:limit]:
            entry = t.to_dict()
            if t.status == TOKEN_ACTIVE and now >= t.expires_at:
                entry["status"] = TOKEN_EXPIRED
            history.append(entry)
        return history

    def all_tokens(self) -> List[Token]:
        with self._lock:
            return list(self._tokens)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
            self._index.clear()
            self._active.clear()

    # ── Persistence surface ───────────────────────────────────

    def to_snapshot(self) -> dict:
        with self._lock:
            return {
                "tokens": [t.to_dict() for t in self._tokens],
                "active": dict(self._active),
            }

    def load_snapshot(self, snapshot: dict) -> None:
        tokens = [Token.from_dict(d) for d in snapshot.get("tokens", [])]
        with self._lock:
            self._tokens = tokens
            self._index = {t.token_id: t for t in tokens}
            self._active = {
                identity: token_id
                for identity, token_id in snapshot.get("active", {}).items()
                if token_id in self._index
            }

    @classmethod
    def from_snapshot(cls, snapshot: dict, **kwargs) -> "TokenLedger":
        ledger = cls(**kwargs)
        ledger.load_snapshot(snapshot)
        return ledger

    def save(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_snapshot(), f, indent=2)

    def load(self, path: str) -> None:
        with open(path, "r", encoding="utf-8") as f:
            self.load_snapshot(json.load(f))
