"""ProfileState persistence through the key-value store."""

from datetime import datetime

from pydantic import ValidationError as SchemaError

from exam_progression.errors import StorageFailure
from exam_progression.models.profile import ProfileState

PROFILE_KEY = "appState"


def load_profile(store) -> ProfileState | None:
    """Load the saved profile, or None if nothing was saved yet."""
    data = store.get(PROFILE_KEY)
    if data is None:
        return None
    try:
        return ProfileState.model_validate(data)
    except SchemaError as e:
        raise StorageFailure(f"Saved profile is invalid: {e}") from e


def load_or_create_profile(store, now: datetime) -> tuple[ProfileState, bool]:
    """Return the saved profile, creating and saving a new one on first run.

    Returns:
        (profile, created)
    """
    profile = load_profile(store)
    if profile is not None:
        return profile, False
    profile = ProfileState.new(now)
    save_profile(store, profile)
    return profile, True


def save_profile(store, profile: ProfileState) -> None:
    store.set(PROFILE_KEY, profile.model_dump(mode="json"))
