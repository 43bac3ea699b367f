"""Current project detection for isolation scoping.

Resolves the project the calling process is working in so hybrid and
isolated searches know which conversation collections are "own project".
Project labels are normalized on both sides of every comparison, so
``My App`` in an env var and ``conv_my-app_voyage`` in the store match.

Example:
    >>> from reflection.project import detect_project
    >>> detect_project("/home/user/projects/my-app")
    'my-app'
"""

import configparser
import logging
import os
import re
from pathlib import Path

logger = logging.getLogger("reflection.project")

MAX_PROJECT_NAME_LENGTH = 50
PROJECT_ENV_VAR = "REFLECTION_PROJECT_ID"


def normalize_project_name(name: str) -> str:
    """Normalize a detected project label (directory or repository name).

    Lowercases, replaces anything but ``[a-z0-9-]`` with hyphens, collapses
    and strips hyphens, truncates to 50 characters. Empty input becomes
    ``unnamed-project``.

    Example:
        >>> normalize_project_name("My Project v2.0")
        'my-project-v2-0'
    """
    if not name or not name.strip():
        return "unnamed-project"

    normalized = re.sub(r"[^a-z0-9-]", "-", name.lower())
    normalized = re.sub(r"-+", "-", normalized).strip("-")

    if len(normalized) > MAX_PROJECT_NAME_LENGTH:
        normalized = normalized[:MAX_PROJECT_NAME_LENGTH].rstrip("-")

    return normalized or "unnamed-project"


def project_key(label: str) -> str:
    """Comparison key for a project label.

    Case-folded and stripped, nothing else: distinct labels always keep
    distinct keys, including non-ASCII and very long names.

    Example:
        >>> project_key(" ProjA ")
        'proja'
        >>> project_key("日本") == project_key("中文")
        False
    """
    return label.strip().casefold()


def _repo_from_remote_url(remote_url: str) -> str | None:
    """Extract the repository name from an HTTPS or SSH git remote URL."""
    remote_url = remote_url.strip()
    match = re.match(
        r"^(?:git@[^:]+:|https?://[^/]+/)[^/]+/([^/]+?)(?:\.git)?/?$", remote_url
    )
    if match:
        return match.group(1)
    return None


def _detect_project_from_git_remote(cwd_path: Path) -> str | None:
    search_path = cwd_path
    git_config_path: Path | None = None
    for _ in range(20):
        candidate = search_path / ".git" / "config"
        if candidate.is_file():
            git_config_path = candidate
            break
        if search_path.parent == search_path:
            break
        search_path = search_path.parent

    if git_config_path is None:
        return None

    try:
        parser = configparser.ConfigParser()
        parser.read(str(git_config_path))
        remote_url = parser.get('remote "origin"', "url", fallback=None)
    except (configparser.Error, OSError) as e:
        logger.debug(
            "git_remote_detection_failed",
            extra={"git_config": str(git_config_path), "error": str(e)},
        )
        return None

    if not remote_url:
        return None

    repo = _repo_from_remote_url(remote_url)
    if repo is None:
        logger.debug("git_remote_url_not_parseable", extra={"remote_url": remote_url})
        return None
    return normalize_project_name(repo)


def detect_project(cwd: str | None = None) -> str:
    """Detect the current project label.

    Detection priority:
    1. REFLECTION_PROJECT_ID environment variable
    2. Repository name from the git remote origin URL
    3. Working directory name

    Args:
        cwd: Working directory path. If None, uses os.getcwd()

    Returns:
        Normalized project label

    Example:
        >>> os.environ['REFLECTION_PROJECT_ID'] = 'My Project'
        >>> detect_project("/any/directory")
        'my-project'
    """
    env_project = os.getenv(PROJECT_ENV_VAR)
    if env_project and env_project.strip():
        project = normalize_project_name(env_project)
        logger.debug("using_env_project", extra={"project": project})
        return project

    if cwd is None:
        cwd = os.getcwd()

    try:
        cwd_path = Path(cwd).resolve(strict=False)
    except (OSError, ValueError) as e:
        logger.warning(
            "path_resolution_failed",
            extra={"cwd": cwd, "error": str(e), "fallback": "unknown-project"},
        )
        return "unknown-project"

    git_project = _detect_project_from_git_remote(cwd_path)
    if git_project:
        logger.debug(
            "project_detected_from_git_remote",
            extra={"cwd": str(cwd_path), "project": git_project},
        )
        return git_project

    if not cwd_path.name:
        return "root-project"

    project = normalize_project_name(cwd_path.name)
    logger.debug("project_detected", extra={"cwd": str(cwd_path), "project": project})
    return project
