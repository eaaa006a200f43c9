#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "nox==2025.5.1",
# ]
# ///

from __future__ import annotations

import os
from typing import (
    Any,
    Dict,
    Final,
    List,
    Sequence,
)

import nox


nox.needs_version = ">=2025.5.1"


nox.options.error_on_external_run = True
nox.options.reuse_venv = "yes"
nox.options.default_venv_backend = "uv|virtualenv"

PYPROJECT = nox.project.load_toml()

SUPPORTED_PYTHONS: Final[List[str]] = ["3.10"]
EXPERIMENTAL_PYTHON_VERSIONS: Final[List[str]] = ["3.11", "3.12", "3.13"]
ALL_PYTHONS: Final[List[str]] = [*SUPPORTED_PYTHONS, *EXPERIMENTAL_PYTHON_VERSIONS]
CI: Final[bool] = "CI" in os.environ


def install_deps(
    session: nox.Session,
    *,
    extras: Sequence[str] | None = None,
    groups: Sequence[str] | None = None,
    project: bool = True,
) -> None:
    """Helper to install dependencies from a group."""
    # If not using uv, install with pip
    if os.getenv("INSTALL_WITH_PIP") is not None:
        command: List[str] = []
        if project:
            command.append("-e")
            command.append(".")
            if extras:
                command[-1] += "[" + ",".join(extras) + "]"
        if groups:
            command.extend(nox.project.dependency_groups(PYPROJECT, *groups))
        session.install(*command)
        return

    command = ["uv", "sync", "--no-default-groups"]
    env: Dict[str, Any] = {}

    if session.venv_backend != "none":
        command.append(f"--python={session.virtualenv.location}")
        env["UV_PROJECT_ENVIRONMENT"] = str(session.virtualenv.location)
    elif CI and "VIRTUAL_ENV" in os.environ:
        # we're in CI and using uv, so use the existing venv
        command.append(f"--python={os.environ['VIRTUAL_ENV']}")
        env["UV_PROJECT_ENVIRONMENT"] = os.environ["VIRTUAL_ENV"]

    for e in extras or ():
        command.append(f"--extra={e}")
    for g in groups or ():
        command.append(f"--group={g}")
    if not project:
        command.append("--no-install-project")

    session.run_install(*command, env=env, silent=not CI)


@nox.session
def lint(session: nox.Session) -> None:
    """Check all paths for linting errors."""
    install_deps(session, groups=["tools"], project=False)
    session.run("ruff", "check", *session.posargs)
    session.run("ruff", "format", "--check", *session.posargs)


@nox.session()
def pyright(session: nox.Session) -> None:
    """Run BasedPyright on Igloo."""
    install_deps(session, groups=["typing", "nox"])
    env = {
        "PYRIGHT_PYTHON_IGNORE_WARNINGS": "1",
    }

    args = ["--venvpath", session.virtualenv.location, *session.posargs]
    try:
        session.run("python", "-m", "basedpyright", *args, env=env)
    except KeyboardInterrupt:
        session.error("Quit pyright")


@nox.session(python=ALL_PYTHONS)
def test(session: nox.Session) -> None:
    """Run the test suite against a throwaway SQLite database."""
    install_deps(session, groups=["test"])
    session.run("python", "-m", "pytest", *session.posargs)


@nox.session(default=False, python=False)
def dev(session: nox.Session) -> None:
    """
    Set up a development environment using uv.

    This will:
    - lock all dependencies with uv
    - create a .venv/ directory, overwriting the existing one,
    - install all dependencies needed for development.
    """
    session.run("uv", "lock", external=True)
    session.run("uv", "venv", "--clear", external=True)
    session.run("uv", "sync", "--all-extras", "--all-groups", external=True)


if __name__ == "__main__":
    nox.main()
