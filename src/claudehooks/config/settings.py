# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""claude-hooks settings.

All values can be overridden through ``CLAUDE_HOOKS_``-prefixed environment
variables or a ``.env`` file found in the working directory or one of the
package's parent directories:

    CLAUDE_HOOKS_HANDLER_TIMEOUT_SECONDS=30
    CLAUDE_HOOKS_PYTHON_EXECUTABLE=/usr/bin/python3
    CLAUDE_HOOKS_LOG_LEVEL=DEBUG

Settings are read once per process through ``get_settings()``. Tests reset
the cache with ``clear_settings_cache()``.
"""

from __future__ import annotations

import logging
import shutil
import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_and_load_env() -> None:
    """Load .env file from project root."""
    from dotenv import load_dotenv

    current = Path(__file__).resolve().parent
    for _ in range(10):
        env_file = current / ".env"
        if env_file.exists():
            load_dotenv(env_file, override=False)
            return
        parent = current.parent
        if parent == current:
            break
        current = parent


_find_and_load_env()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Settings for hook dispatch and the isolated handler runner."""

    # =========================================================================
    # HANDLER EXECUTION
    # =========================================================================
    handler_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Default per-handler timeout when a plugin declares none",
    )
    python_executable: str = Field(
        default=sys.executable,
        description="Interpreter used to start the isolated handler runner",
    )
    max_output_bytes: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Maximum size of a handler's stdout verdict line",
    )

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Level for diagnostics written to stderr",
    )

    # =========================================================================
    # SETTINGS DOCUMENT GENERATION
    # =========================================================================
    command_name: str = Field(
        default="claude-hooks",
        min_length=1,
        description="Command written into the assistant's hook bindings",
    )
    manifest_name: str = Field(
        default="hooks.yaml",
        min_length=1,
        description="File name of the plugin manifest created by `init`",
    )

    # =========================================================================
    # PYDANTIC SETTINGS CONFIG
    # =========================================================================
    model_config = SettingsConfigDict(
        env_prefix="CLAUDE_HOOKS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def validate_configuration(self) -> list[str]:
        """Check settings that cannot be verified field by field.

        Returns:
            List of problems. Empty list means valid.

        Example:
            >>> Settings(python_executable="/nonexistent/python").validate_configuration()
            ['python_executable not found: /nonexistent/python']
        """
        errors: list[str] = []
        executable = self.python_executable
        if not (Path(executable).is_file() or shutil.which(executable)):
            errors.append(f"python_executable not found: {executable}")
        if Path(self.manifest_name).name != self.manifest_name:
            errors.append(
                f"manifest_name must be a file name, got: {self.manifest_name}"
            )
        return errors

    def log_problems(self) -> None:
        """Log the result of ``validate_configuration()`` as warnings."""
        for problem in self.validate_configuration():
            logger.warning("settings_problem", extra={"problem": problem})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get singleton settings instance.

    Note:
        For test isolation, use `clear_settings_cache()` to reset the
        singleton before each test that needs fresh settings.
    """
    instance = Settings()
    instance.log_problems()
    return instance


def clear_settings_cache() -> None:
    """Clear the settings singleton cache for test isolation.

    Example:
        @pytest.fixture(autouse=True)
        def reset_settings():
            clear_settings_cache()
            yield
            clear_settings_cache()
    """
    get_settings.cache_clear()
