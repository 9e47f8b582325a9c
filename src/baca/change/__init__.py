"""Change models and loader exports."""

from .loader import ChangeLoadError, load_change
from .models import Change, ChangeSpec

__all__ = ["Change", "ChangeLoadError", "ChangeSpec", "load_change"]
