"""Bump every ?v=N cache-busting query string in the layout template."""
import os
import re
import sys

from config import BASE_DIR

LAYOUT = os.path.join(BASE_DIR, "templates", "layout.html")
VERSION_RE = re.compile(r"(\?v=)(\d+)")


def bump(content):
    return VERSION_RE.sub(lambda m: f"{m.group(1)}{int(m.group(2)) + 1}", content)


def bump_file(path):
    with open(path, "r", encoding="utf-8") as f:
        content = f.read()
    with open(path, "w", encoding="utf-8") as f:
        f.write(bump(content))


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else LAYOUT
    bump_file(path)
    print(f"Updated version numbers in {path}")
