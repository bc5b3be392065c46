"""
Trust Store - Remembered operator approvals

Commands are keyed by the SHA-256 of their normalized text and stored as
a JSON list. Entries may expire; expired entries are ignored on lookup
and dropped by ``clean_expired``.
"""

import getpass
import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from ..utils.logger import debug, warning

DEFAULT_TRUST_PATH = Path.home() / ".execguard" / "trust.json"


def hash_command(command: str) -> str:
    return hashlib.sha256(command.encode("utf-8")).hexdigest()


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


@dataclass
class TrustEntry:
    """One remembered approval"""

    command_hash: str
    command: str
    approved_at: str
    approved_by: str = ""
    expires_at: Optional[str] = None
    use_count: int = 0
    last_used: Optional[str] = None
    note: str = ""
    tags: List[str] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        if not self.expires_at:
            return False
        return now > datetime.fromisoformat(self.expires_at)


class TrustStore:
    """JSON-file backed set of trusted commands"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else DEFAULT_TRUST_PATH
        self._entries: Dict[str, TrustEntry] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError) as e:
            warning(f"Trust store unreadable at {self.path}: {e}")
            return

        valid_fields = set(TrustEntry.__dataclass_fields__)
        for raw in data:
            if not isinstance(raw, dict) or "command_hash" not in raw:
                continue
            entry = TrustEntry(**{k: v for k, v in raw.items() if k in valid_fields})
            self._entries[entry.command_hash] = entry

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [asdict(e) for e in self._entries.values()]
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, command: str) -> Optional[TrustEntry]:
        return self._entries.get(hash_command(command))

    def is_trusted(self, command: str, now: Optional[datetime] = None) -> bool:
        entry = self.get(command)
        if entry is None:
            return False
        return not entry.is_expired(now or datetime.now())

    def add(
        self,
        command: str,
        duration: Optional[timedelta] = None,
        note: str = "",
        now: Optional[datetime] = None,
    ) -> TrustEntry:
        """Remember an approval; a falsy duration never expires"""
        now = now or datetime.now()
        entry = TrustEntry(
            command_hash=hash_command(command),
            command=command,
            approved_at=now.isoformat(),
            approved_by=_current_user(),
            expires_at=(now + duration).isoformat() if duration else None,
            note=note,
        )
        self._entries[entry.command_hash] = entry
        self._save()
        debug(f"Trusted command: {command}")
        return entry

    def record_use(self, command: str, now: Optional[datetime] = None) -> None:
        entry = self.get(command)
        if entry is None:
            raise KeyError(f"Command not in trust store: {command}")
        entry.use_count += 1
        entry.last_used = (now or datetime.now()).isoformat()
        self._save()

    def remove(self, command: str) -> bool:
        removed = self._entries.pop(hash_command(command), None) is not None
        if removed:
            self._save()
        return removed

    def list(self, now: Optional[datetime] = None) -> List[TrustEntry]:
        now = now or datetime.now()
        return [e for e in self._entries.values() if not e.is_expired(now)]

    def clean_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        expired = [h for h, e in self._entries.items() if e.is_expired(now)]
        for h in expired:
            del self._entries[h]
        if expired:
            self._save()
        return len(expired)
