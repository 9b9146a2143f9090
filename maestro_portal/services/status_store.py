from dataclasses import dataclass, field
from typing import List, Optional

MAX_LOG_LINES = 200


@dataclass
class StatusStore:
    started: bool = False
    last_error: Optional[str] = None
    last_command: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    def log(self, msg: str):
        self.logs.append(msg)
        if len(self.logs) > MAX_LOG_LINES:
            self.logs = self.logs[-MAX_LOG_LINES:]

    def error(self, msg: str):
        self.last_error = msg
        self.log(f"error {msg}")
