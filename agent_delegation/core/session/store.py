"""
Session package persistence.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from ..errors import ConfigurationError, InputValidationError
from .package import SessionPackage, validate_session_package

logger = logging.getLogger(__name__)

SESSION_PACKAGE_PATH_ENV = "AGENTIC_TRUST_SESSION_PACKAGE_PATH"
DEFAULT_SESSION_PACKAGE_FILE = "sessionPackage.json.secret"

PathLike = Union[str, os.PathLike]


def resolve_session_package_path(path: Optional[PathLike] = None) -> Path:
    """Argument, then ``AGENTIC_TRUST_SESSION_PACKAGE_PATH``, then the working directory."""
    if path:
        return Path(path)
    env_path = os.getenv(SESSION_PACKAGE_PATH_ENV)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_SESSION_PACKAGE_FILE


def save_session_package(package: SessionPackage, path: Optional[PathLike] = None) -> Path:
    """Write the package as JSON readable only by the owner."""
    target = resolve_session_package_path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(package.to_json())
    os.chmod(target, 0o600)
    logger.info(f"Saved session package for agent {package.agent_id} to {target}")
    return target


def load_session_package(path: Optional[PathLike] = None) -> SessionPackage:
    """
    Load and validate a session package.

    Raises:
        ConfigurationError: no file at the resolved path
        InputValidationError: the file is malformed or inconsistent
    """
    source = resolve_session_package_path(path)
    if not source.is_file():
        raise ConfigurationError(f"Session package not found at {source}")

    package = SessionPackage.from_json(source.read_text(encoding="utf-8"))
    problems = validate_session_package(package)
    if problems:
        raise InputValidationError(
            f"Invalid session package at {source}: {'; '.join(problems)}",
            details={"problems": problems},
        )
    return package
