"""Checkpoint recording the outcome of the last scheduled sync."""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from kb_bot.logging_conf import logger


class FiringCheckpoint:
    """Persists when the sync job last fired and whether it succeeded."""

    def __init__(self, directory: Path):
        self.checkpoint_file: Path = Path(directory) / "data_sync.json"
        self.checkpoint_file.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Get the last recorded firing.

        Returns:
            Dict with fired_at, succeeded and error, or None if never fired
        """
        try:
            if self.checkpoint_file.exists():
                with open(self.checkpoint_file, "r") as f:
                    return json.load(f)
        except Exception as e:
            logger.warning(f"Failed to read checkpoint: {e}")
        return None

    def record(self, fired_at: datetime, succeeded: bool, error: Optional[str] = None) -> None:
        """Save the outcome of a firing."""
        try:
            data = {
                "fired_at": fired_at.isoformat(),
                "succeeded": succeeded,
                "error": error,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
            with open(self.checkpoint_file, "w") as f:
                json.dump(data, f, indent=2)
            logger.debug(f"Saved checkpoint: {fired_at.isoformat()}")
        except Exception as e:
            logger.error(f"Failed to save checkpoint: {e}", exc_info=True)
