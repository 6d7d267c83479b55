"""Settings - directories and log level for a playbook run."""

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "PLAYBOOK_"


class Settings(BaseModel):
    """
    Runtime settings shared by the engine and all runners.

    Values can be overridden through environment variables:
    ``PLAYBOOK_WORKING_DIR``, ``PLAYBOOK_OUTPUT_DIR``, ``PLAYBOOK_TEMP_DIR``,
    ``PLAYBOOK_HOME_DIR`` and ``PLAYBOOK_LOG_LEVEL``.
    """

    working_directory: Path = Field(
        default=Path("working"), description="Where console runners execute"
    )
    output_directory: Path = Field(
        default=Path("build/output"), description="Where generated tutorials go"
    )
    temp_directory: Path = Field(
        default=Path("build/temp"), description="Scratch space for runners"
    )
    home_directory: Path = Field(
        default_factory=Path.home,
        description="Home directory holding the devonfw IDE configuration (.devon)",
    )
    log_level: str = Field(default="INFO", description="Root log level")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings with any overrides applied
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for field_name, variable in (
            ("working_directory", "WORKING_DIR"),
            ("output_directory", "OUTPUT_DIR"),
            ("temp_directory", "TEMP_DIR"),
            ("home_directory", "HOME_DIR"),
            ("log_level", "LOG_LEVEL"),
        ):
            value = environ.get(ENV_PREFIX + variable)
            if value:
                overrides[field_name] = value
        return cls(**overrides)
