"""In-memory store of per-session provider configuration."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from agent.config import PROVIDERS
from agent.exceptions import ConfigError


@dataclass(frozen=True)
class SessionConfig:
    """Provider settings one session chats with. Replaced wholesale, never edited."""
    session_id: str
    provider: str
    api_key: str
    model: str = ""
    base_url: str | None = None

    @classmethod
    def from_request(cls, session_id: str, raw: dict) -> "SessionConfig":
        """Build from the client's ``config`` object (camelCase keys)."""
        if not isinstance(raw, dict):
            raise ConfigError("config must be an object")
        provider = raw.get("provider") or "openai"
        if provider not in PROVIDERS:
            raise ConfigError(f"Unsupported provider: {provider!r}")
        api_key = raw.get("apiKey") or raw.get("api_key") or ""
        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigError("config.apiKey is required")
        model = raw.get("model") or ""
        if not isinstance(model, str):
            raise ConfigError("config.model must be a string")
        base_url = raw.get("baseURL") or raw.get("base_url") or None
        return cls(
            session_id=session_id,
            provider=provider,
            api_key=api_key.strip(),
            model=model.strip(),
            base_url=base_url.strip() if isinstance(base_url, str) else None,
        )

    def public_dict(self) -> dict[str, Any]:
        """Summary safe to return to clients (no API key)."""
        return {
            "sessionId": self.session_id,
            "provider": self.provider,
            "model": self.model,
            "baseURL": self.base_url,
            "hasApiKey": bool(self.api_key),
        }


@dataclass
class _Entry:
    config: SessionConfig
    created_at: str
    updated_at: str
    request_count: int = 0
    touched: int = 0


class SessionStore:
    """Thread-safe map of session id -> SessionConfig.

    Requests for different sessions never interfere; concurrent requests for
    the same session may race, and the last ``put`` wins. Entries live until
    deleted unless ``max_sessions`` caps the store, in which case the least
    recently updated entries are evicted and reported to ``on_evict``.
    """

    def __init__(self, max_sessions: int = 0, on_evict: Callable[[str], Any] | None = None):
        self.max_sessions = max_sessions
        self.on_evict = on_evict
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._clock = itertools.count()

    def get(self, session_id: str) -> SessionConfig | None:
        with self._lock:
            entry = self._entries.get(session_id)
            return entry.config if entry else None

    def put(self, config: SessionConfig) -> SessionConfig:
        """Insert or replace the configuration for ``config.session_id``."""
        now = self._now()
        with self._lock:
            entry = self._entries.get(config.session_id)
            if entry is None:
                entry = _Entry(config=config, created_at=now, updated_at=now)
                self._entries[config.session_id] = entry
            else:
                entry.config = config
                entry.updated_at = now
            entry.request_count += 1
            entry.touched = next(self._clock)
            evicted = self._prune_locked()
        if self.on_evict is not None:
            for session_id in evicted:
                self.on_evict(session_id)
        return config

    def delete(self, session_id: str) -> bool:
        """Remove a session. Returns False when it did not exist."""
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def list_sessions(self) -> list[dict[str, Any]]:
        with self._lock:
            entries = sorted(self._entries.values(), key=lambda e: e.touched, reverse=True)
            return [
                {
                    **e.config.public_dict(),
                    "createdAt": e.created_at,
                    "updatedAt": e.updated_at,
                    "requestCount": e.request_count,
                }
                for e in entries
            ]

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _prune_locked(self) -> list[str]:
        if self.max_sessions <= 0 or len(self._entries) <= self.max_sessions:
            return []
        excess = len(self._entries) - self.max_sessions
        oldest = sorted(self._entries, key=lambda sid: self._entries[sid].touched)[:excess]
        for session_id in oldest:
            del self._entries[session_id]
        return oldest

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f UTC")
