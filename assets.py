import logging
import os

CONTENT_TYPES = {
    ".css": "text/css",
    ".js": "text/javascript",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}

LIVE_CACHE_CONTROL = "no-store"
BUNDLED_CACHE_CONTROL = "public, max-age=31536000"


def content_type_for(name):
    """Content type for an asset name, or None (with a warning) when the extension is unknown."""
    ext = os.path.splitext(name)[1].lower()
    content_type = CONTENT_TYPES.get(ext)
    if content_type is None:
        logging.warning("Unknown extension %r for asset %s", ext, name)
    return content_type


def valid_name(name):
    return bool(name) and not name.startswith(".") and "/" not in name and "\\" not in name


class LiveAssets:
    """Reads assets from disk on every request; used while developing."""

    cache_control = LIVE_CACHE_CONTROL

    def __init__(self, directory):
        self.directory = directory

    def read(self, name):
        if not valid_name(name):
            return None
        try:
            with open(os.path.join(self.directory, name), "rb") as f:
                return f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None


class BundledAssets:
    """Assets loaded into memory once at startup and served from there."""

    cache_control = BUNDLED_CACHE_CONTROL

    def __init__(self, files):
        self.files = dict(files)

    @classmethod
    def load(cls, directory):
        files = {}
        if os.path.isdir(directory):
            for entry in sorted(os.listdir(directory)):
                path = os.path.join(directory, entry)
                if valid_name(entry) and os.path.isfile(path):
                    with open(path, "rb") as f:
                        files[entry] = f.read()
        logging.info("Bundled %d assets from %s", len(files), directory)
        return cls(files)

    def read(self, name):
        return self.files.get(name)


def asset_source(directory, dev_mode):
    if dev_mode:
        return LiveAssets(directory)
    return BundledAssets.load(directory)
