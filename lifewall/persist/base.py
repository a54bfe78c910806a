from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class Persistence(ABC):
    """Abstract persistence interface for session snapshots and game stats."""

    @abstractmethod
    def load_session(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def schedule_save(self, document: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_session(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def load_stats(self) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def record_game_end(
        self,
        winner: Optional[Dict[str, Any]],
        palette: Optional[str],
        category: Optional[str],
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None
