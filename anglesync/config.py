"""Engine configuration."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from anglesync.models.state import EndPolicy
from anglesync.persistence.store import AUTOSAVE_KEY, MANUAL_KEY


class EngineConfig(BaseModel):
    """Tunables for the alignment engine and the CLI."""

    nudge_step: float = Field(default=0.1, gt=0.0, le=10.0)
    in_sync_tolerance: float = Field(default=0.05, ge=0.0, le=1.0)
    default_end_policy: EndPolicy = EndPolicy.STOP_ALL_AT_FIRST_END
    autosave_key: str = AUTOSAVE_KEY
    manual_key: str = MANUAL_KEY
    state_file: Path = Path("anglesync.state.json")
    session_file: Path = Path("anglesync.session.json")

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "EngineConfig":
        """
        Build a config from ``ANGLESYNC_*`` environment variables.

        A ``.env`` file is loaded first; variables already set in the
        environment take precedence over it.
        """
        load_dotenv(env_file)

        env_names = {
            "nudge_step": "ANGLESYNC_NUDGE_STEP",
            "in_sync_tolerance": "ANGLESYNC_IN_SYNC_TOLERANCE",
            "default_end_policy": "ANGLESYNC_END_POLICY",
            "autosave_key": "ANGLESYNC_AUTOSAVE_KEY",
            "manual_key": "ANGLESYNC_MANUAL_KEY",
            "state_file": "ANGLESYNC_STATE_FILE",
            "session_file": "ANGLESYNC_SESSION_FILE",
        }

        values = {
            field_name: os.environ[env_name]
            for field_name, env_name in env_names.items()
            if os.environ.get(env_name)
        }
        return cls(**values)
