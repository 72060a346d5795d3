from importlib.metadata import PackageNotFoundError, version

from .config import REPO_ROOT

_DIST_NAME = "maa-console"


def _read_version() -> str:
    """Prefer the checked-out VERSION file, then installed metadata."""
    version_file = REPO_ROOT / "VERSION"
    if version_file.is_file():
        text = version_file.read_text(encoding="utf-8").strip()
        if text:
            return text
    try:
        return version(_DIST_NAME)
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _read_version()

__all__ = ["REPO_ROOT", "__version__"]
