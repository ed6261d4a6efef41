"""Folder naming utilities for exported projects: slug generation and dedup."""

import os
import re

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
PROJECTS_DIR = "generated_projects"


def slugify(text):
    """Convert text to a filesystem-safe slug."""
    text = text.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", "_", text)
    return text.strip("_")


def extract_project_name(requirements):
    """Pull a short project name from the first requirement."""
    if isinstance(requirements, str):
        requirements = [requirements]
    first = next((r for r in requirements if r and r.strip()), "")
    # Remove common filler words to get the core noun
    filler = {
        "build", "me", "a", "an", "the", "create", "make", "generate",
        "write", "for", "to", "with", "using", "that", "and", "app",
        "application", "tool", "system", "platform", "please", "can",
        "you", "i", "want", "need", "some", "new", "of", "in", "on",
    }
    words = re.sub(r"[^\w\s]", "", first.lower()).split()
    meaningful = [w for w in words if w not in filler]
    name = "_".join(meaningful[:3]) if meaningful else "project"
    return slugify(name) or "project"


MAX_DEDUP = 1000


def get_output_dir(requirements, base_dir=None):
    """Return a deduplicated export directory for a run's requirements."""
    base_dir = base_dir or os.path.join(BASE_DIR, PROJECTS_DIR)
    project_name = extract_project_name(requirements)
    base = os.path.join(base_dir, project_name)

    resolved = os.path.realpath(base)
    if not resolved.startswith(os.path.realpath(base_dir) + os.sep):
        raise ValueError(f"Generated output path escapes base directory: {base}")

    if not os.path.exists(base):
        return base

    # Dedup with _2, _3, etc.
    for counter in range(2, MAX_DEDUP + 2):
        candidate = f"{base}_{counter}"
        if not os.path.exists(candidate):
            return candidate

    raise RuntimeError(f"Too many duplicate projects (>{MAX_DEDUP}) for: {project_name}")
