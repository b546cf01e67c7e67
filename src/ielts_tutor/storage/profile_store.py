"""Profile persistence (versioned JSON blob + fcntl.flock + atomic write)."""

import fcntl
import json
import os
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError as PydanticValidationError

from ielts_tutor.config import Settings
from ielts_tutor.errors import PersistenceCorrupt
from ielts_tutor.models.profile import UserProfile

logger = structlog.get_logger()

BLOB_VERSION = 4


def encode_blob(profile: UserProfile) -> dict:
    return {"version": BLOB_VERSION, "profile": profile.model_dump(mode="json")}


def decode_blob(data: object) -> UserProfile:
    """Decode a stored blob.

    Accepts the versioned ``{"version": ..., "profile": {...}}`` wrapper and
    older unwrapped profile objects. Fields missing from older shapes take
    their defaults.

    Raises:
        PersistenceCorrupt: The blob is not a profile.
    """
    if not isinstance(data, dict):
        raise PersistenceCorrupt(f"expected an object, got {type(data).__name__}")
    payload = data.get("profile", data) if "version" in data else data
    if not isinstance(payload, dict):
        raise PersistenceCorrupt("profile payload is not an object")
    try:
        return UserProfile.model_validate(payload)
    except PydanticValidationError as e:
        raise PersistenceCorrupt(str(e)) from e


class ProfileStore:
    """Stores the learner profile under a fixed key in a data directory.

    Args:
        directory: Directory holding the blob.
        key: Storage key; the blob is ``<directory>/<key>.json``.
    """

    def __init__(self, directory: Path, key: str = "ielts_mastery_v4"):
        self.directory = Path(directory)
        self.key = key
        self.directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProfileStore":
        return cls(settings.profiles_dir, settings.profile_storage_key)

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    @property
    def lock_path(self) -> Path:
        return self.directory / f"{self.key}.lock"

    def load(self) -> UserProfile | None:
        """Last saved profile, or None when absent or unreadable."""
        if not self.path.exists():
            return None
        with open(self.lock_path, "w") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_SH)
            raw = self.path.read_bytes()
        try:
            try:
                data = json.loads(raw.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise PersistenceCorrupt(str(e)) from e
            return decode_blob(data)
        except PersistenceCorrupt as e:
            logger.warning("profile_blob_corrupt", path=str(self.path), error=str(e))
            return None

    def save(self, profile: UserProfile) -> None:
        """Atomically replace the stored blob with ``profile``."""
        with open(self.lock_path, "w") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            with tempfile.NamedTemporaryFile(
                "w", dir=self.directory, delete=False, suffix=".json", encoding="utf-8"
            ) as tmp:
                json.dump(encode_blob(profile), tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp.name, self.path)
        logger.debug("profile_saved", path=str(self.path))

    def clear(self) -> None:
        """Remove the stored profile (sign out / reset)."""
        with open(self.lock_path, "w") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            self.path.unlink(missing_ok=True)
        logger.info("profile_cleared", path=str(self.path))

    def update_profile(self, **changes) -> UserProfile:
        """Load, apply field changes, validate and save.

        Raises:
            LookupError: No profile is stored.
        """
        profile = self.load()
        if profile is None:
            raise LookupError("no profile stored")
        updated = UserProfile.model_validate({**profile.model_dump(), **changes})
        self.save(updated)
        return updated
