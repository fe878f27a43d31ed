"""
SceneCapture - Structured Logging

All capture logs are:
- Structured (JSON lines)
- Timestamped
- Module-scoped
- Human-readable on the console

Every pipeline component logs:
- Initialization
- Inputs received
- Outputs produced
- Explicit error states, with a reason and a suggested fix where possible
"""

import json
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class LogLevel(Enum):
    """Log severity levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_LEVEL_ORDER = {level: i for i, level in enumerate(LogLevel)}

_CONSOLE_COLORS = {
    "DEBUG": "\033[36m",     # Cyan
    "INFO": "\033[32m",      # Green
    "WARNING": "\033[33m",   # Yellow
    "ERROR": "\033[31m",     # Red
    "CRITICAL": "\033[35m",  # Magenta
}
_RESET = "\033[0m"


class CaptureLogger:
    """
    Structured JSON logger for one pipeline component.

    All log entries include:
    - timestamp: ISO 8601 format
    - module: Source module name
    - level: Severity level
    - message: Human-readable message
    - Additional context fields as needed
    """

    def __init__(
        self,
        module_name: str,
        log_dir: Optional[Path] = None,
        console_output: bool = True,
        file_output: bool = True,
        console_level: LogLevel = LogLevel.INFO,
    ):
        """
        Initialize logger for a specific module.

        Args:
            module_name: Name of the module (e.g., "SceneRandomizer")
            log_dir: Directory for log files
            console_output: Whether to print to console
            file_output: Whether to write to file
            console_level: Entries below this level are kept but not printed
        """
        self.module_name = module_name
        self.log_dir = log_dir
        self.console_output = console_output
        self.file_output = file_output
        self.console_level = console_level
        self.log_file: Optional[Path] = None
        self._entries: list[dict] = []

        if log_dir and file_output:
            self.log_dir = Path(log_dir)
            self.log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_file = self.log_dir / f"{module_name.lower()}_{timestamp}.jsonl"

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        """Build one entry and send it to console, file and memory."""
        entry = {
            "timestamp": datetime.now().isoformat(),
            "module": self.module_name,
            "level": level.value,
            "message": message,
        }
        for key, value in context.items():
            if value is None and key in ("reason", "suggested_fix"):
                continue
            if isinstance(value, Path):
                value = value.as_posix()
            elif isinstance(value, Enum):
                value = value.value
            elif hasattr(value, "__dict__"):
                value = str(value)
            entry[key] = value

        if self.console_output and _LEVEL_ORDER[level] >= _LEVEL_ORDER[self.console_level]:
            stream = sys.stderr if _LEVEL_ORDER[level] >= _LEVEL_ORDER[LogLevel.ERROR] else sys.stdout
            lines = [f"{_CONSOLE_COLORS[level.value]}[{self.module_name}] {message}{_RESET}"]
            lines += [f"  {key}: {value}" for key, value in list(entry.items())[4:]]
            print("\n".join(lines), file=stream)

        if self.log_file:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")

        self._entries.append(entry)

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, **context)

    def error(
        self,
        message: str,
        reason: Optional[str] = None,
        suggested_fix: Optional[str] = None,
        **context: Any
    ) -> None:
        """
        Log an error state.

        Args:
            message: Error description
            reason: Why the error occurred
            suggested_fix: How to potentially fix it
        """
        self._log(LogLevel.ERROR, message, reason=reason, suggested_fix=suggested_fix, **context)

    def critical(
        self,
        message: str,
        reason: Optional[str] = None,
        suggested_fix: Optional[str] = None,
        **context: Any
    ) -> None:
        """Log an error that aborts the run."""
        self._log(LogLevel.CRITICAL, message, reason=reason, suggested_fix=suggested_fix, **context)

    def log_init(self, **params: Any) -> None:
        self.info(f"{self.module_name} initialized", **params)

    def log_input(self, description: str, **data: Any) -> None:
        self.debug(f"Input: {description}", **data)

    def log_output(self, description: str, **data: Any) -> None:
        self.debug(f"Output: {description}", **data)

    def get_entries(self, *levels: LogLevel) -> list[dict]:
        """Entries in logging order, restricted to `levels` when given."""
        wanted = {level.value for level in levels}
        return [e for e in self._entries if not wanted or e["level"] in wanted]

    def get_summary(self) -> dict:
        counts = {level.value: 0 for level in LogLevel}
        for entry in self._entries:
            counts[entry["level"]] += 1
        return {
            "module": self.module_name,
            "total_entries": len(self._entries),
            "by_level": counts,
            "errors": counts["ERROR"] + counts["CRITICAL"],
            "log_file": self.log_file.as_posix() if self.log_file else None,
        }


class PipelineLogger:
    """
    Aggregated logger for a capture run.
    Hands out one CaptureLogger per component and collects their entries.
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        console_output: bool = True,
        console_level: LogLevel = LogLevel.INFO,
    ):
        """
        Initialize pipeline logger.

        Args:
            log_dir: Directory for per-module .jsonl files (None = in-memory only)
            console_output: Whether module loggers print to console
            console_level: Minimum level printed to console
        """
        self.log_dir = Path(log_dir) if log_dir else None
        self.console_output = console_output
        self.console_level = console_level
        self._module_loggers: dict[str, CaptureLogger] = {}

        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)

    def get_logger(self, module_name: str) -> CaptureLogger:
        """Get or create logger for a module."""
        if module_name not in self._module_loggers:
            self._module_loggers[module_name] = CaptureLogger(
                module_name=module_name,
                log_dir=self.log_dir,
                console_output=self.console_output,
                file_output=self.log_dir is not None,
                console_level=self.console_level,
            )
        return self._module_loggers[module_name]

    def get_all_errors(self) -> list[dict]:
        """Error and critical entries from every module, oldest first."""
        errors = []
        for logger in self._module_loggers.values():
            errors.extend(logger.get_entries(LogLevel.ERROR, LogLevel.CRITICAL))
        return sorted(errors, key=lambda e: e["timestamp"])

    def get_pipeline_summary(self) -> dict:
        modules = {name: logger.get_summary() for name, logger in self._module_loggers.items()}
        return {
            "log_directory": self.log_dir.as_posix() if self.log_dir else None,
            "modules": modules,
            "total_errors": sum(m["errors"] for m in modules.values()),
        }

    def write_summary(self) -> Optional[Path]:
        """Write pipeline_summary.json. Returns None for in-memory loggers."""
        if not self.log_dir:
            return None
        summary_path = self.log_dir / "pipeline_summary.json"
        with open(summary_path, "w", encoding="utf-8") as f:
            json.dump(self.get_pipeline_summary(), f, indent=2, default=str)
        return summary_path
