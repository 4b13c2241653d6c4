"""On-disk locations under ~/.cloudcompose/."""

from pathlib import Path

# Config file and project status snapshots live here
CLOUDCOMPOSE_DIR = Path.home() / ".cloudcompose"

PROJECTS_DIR = CLOUDCOMPOSE_DIR / "projects"
