#!/usr/bin/env python3
"""
Diagnostic Logger for the topgun harness

Configures harness logging and collects the errors and warnings recorded
while tearing a lane down, so a failed cleanup can be diagnosed after the
scenario has already been reported.
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("topgun.diagnostic")


def configure_logging(level: str = "INFO", log_dir: str = "") -> None:
    """Attach stdout (and optionally file) handlers to the topgun logger tree."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, "topgun.log")))

    root = logging.getLogger("topgun")
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


class DiagnosticLogger:
    """Collects teardown diagnostics for one scenario."""

    def __init__(self, name: str = "topgun.diagnostic"):
        self.logger = logging.getLogger(name)
        self.start_time = datetime.now()
        self.errors: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []

    def log_error(self, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log an error with context."""
        self.errors.append({
            "timestamp": datetime.now().isoformat(),
            "error": error_msg,
            "context": context or {},
        })
        self.logger.error(f"ERROR: {error_msg}")
        if context:
            self.logger.error(f"Context: {json.dumps(context, indent=2, default=str)}")

    def log_warning(self, warning_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log a warning with context."""
        self.warnings.append({
            "timestamp": datetime.now().isoformat(),
            "warning": warning_msg,
            "context": context or {},
        })
        self.logger.warning(f"WARNING: {warning_msg}")
        if context:
            self.logger.warning(f"Context: {json.dumps(context, indent=2, default=str)}")

    def log_success(self, success_msg: str):
        self.logger.info(f"SUCCESS: {success_msg}")

    def generate_report(self, report_path: Optional[str] = None) -> Dict[str, Any]:
        """Summarise collected diagnostics, writing them to report_path if given."""
        report = {
            "start_time": self.start_time.isoformat(),
            "end_time": datetime.now().isoformat(),
            "errors": self.errors,
            "warnings": self.warnings,
            "total_errors": len(self.errors),
            "total_warnings": len(self.warnings),
        }

        if report_path:
            with open(report_path, "w") as f:
                json.dump(report, f, indent=2, default=str)
            self.logger.info(f"Diagnostic report saved to: {report_path}")

        self.logger.info(
            f"Diagnostics: {len(self.errors)} errors, {len(self.warnings)} warnings"
        )
        return report
