import os
import sys
from pathlib import Path
from dataclasses import dataclass

# Lil helper function to create missing directories if missing, and optionally error out when a path
# doesn't exist.
def ensure_directory(path: Path,must_exist=False):
    if must_exist:
        if not path.exists():
            raise FileNotFoundError(f"Required directory is missing: {path}")
        if not path.is_dir():
            raise NotADirectoryError(f"Expected a directory, got a file: {path}")
    else:
        path.mkdir(parents=True,exist_ok=True)
    return path

# Works out where user data should live. TT_HOME always wins, otherwise we follow the platform's convention.
def default_data_root() -> Path:
    override = os.getenv("TT_HOME")
    if override:
        return Path(override).expanduser()

    if sys.platform == "win32":
        appdata = os.getenv("APPDATA")
        if not appdata:
            raise RuntimeError("Missing APPDATA environment variable, cannot determine data directories.")
        return Path(appdata) / "TimeTracker"

    xdg = os.getenv("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "time-tracker"
    return Path.home() / ".local" / "share" / "time-tracker"

# Dataclass for accessing paths across program.
@dataclass(frozen=False)
class ProjectPaths:

    data: Path
    logs: Path
    current: Path
    snapshots: Path

    @property
    def state_file(self) -> Path:
        return self.current / "state.json"

    @staticmethod
    def build(root: Path | None = None):
        # Folder for all time tracker user-specific and session related stuff
        data = ensure_directory(root or default_data_root())

        # Folders within the data folder
        logs = ensure_directory(data / "logs")
        current = ensure_directory(data / "current")
        snapshots = ensure_directory(data / "snapshots")

        return ProjectPaths(
            data = data,
            logs = logs,
            current = current,
            snapshots = snapshots,
        )
PATHS = ProjectPaths.build()
