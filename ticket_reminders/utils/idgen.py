"""ID Generation Utilities"""
import os
import socket
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'RLOG', 'RUN')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('RLOG')
        'RLOG-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_log_entry_id() -> str:
    """Generate reminder log entry ID"""
    return generate_id("RLOG")


def generate_run_id() -> str:
    """Generate scheduler run ID"""
    return generate_id("RUN")


def generate_owner_id() -> str:
    """Unique run-lock owner for this process: host, pid and a random suffix"""
    return f"{socket.gethostname()}-{os.getpid()}-{generate_id()[:8]}"


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
