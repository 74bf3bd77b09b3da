"""Keep "modified" timestamps in document frontmatter up to date."""

from .core.orchestrator import UpdateOrchestrator, UpdateOutcome, UpdateResult
from .services.settings import Settings, SettingsStore

__version__ = "0.3.0"

__all__ = ["UpdateOrchestrator", "UpdateOutcome", "UpdateResult", "Settings", "SettingsStore", "__version__"]
