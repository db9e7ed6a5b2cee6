"""Command builder — resolve a run config into an executable invocation."""

from __future__ import annotations

import os
import shlex

from procdeck.sessions.models import RunConfig


def _wrapper(working_dir: str, name: str) -> str | None:
    """Return ``./<name>`` if a build wrapper script exists in ``working_dir``."""
    base = os.path.expanduser(working_dir or ".")
    if os.path.isfile(os.path.join(base, name)):
        return f"./{name}"
    return None


def _has_file(working_dir: str, *names: str) -> bool:
    base = os.path.expanduser(working_dir or ".")
    return any(os.path.isfile(os.path.join(base, n)) for n in names)


def _split(text: str) -> list[str]:
    return shlex.split(text) if text.strip() else []


def _shell(config: RunConfig) -> tuple[str, list[str]]:
    line = " ".join([config.command, *(shlex.quote(a) for a in config.args)]).strip()
    if os.name == "nt":
        return "cmd", ["/c", line]
    return "sh", ["-c", line]


def _gradle(config: RunConfig) -> tuple[str, list[str]]:
    executable = _wrapper(config.working_dir, "gradlew") or "gradle"
    return executable, [*_split(config.command), *config.args]


def _maven(config: RunConfig) -> tuple[str, list[str]]:
    executable = _wrapper(config.working_dir, "mvnw") or "mvn"
    return executable, [*_split(config.command), *config.args]


def _node(config: RunConfig) -> tuple[str, list[str]]:
    args = ["run", *_split(config.command)]
    if config.args:
        args += ["--", *config.args]
    return "npm", args


def _docker(config: RunConfig) -> tuple[str, list[str]]:
    return "docker", [*_split(config.command), *config.args]


def _spring_boot(config: RunConfig) -> tuple[str, list[str]]:
    mvnw = _wrapper(config.working_dir, "mvnw")
    gradlew = _wrapper(config.working_dir, "gradlew")
    if mvnw or _has_file(config.working_dir, "pom.xml"):
        return mvnw or "mvn", ["spring-boot:run", *config.args]
    if gradlew or _has_file(config.working_dir, "build.gradle", "build.gradle.kts"):
        return gradlew or "gradle", ["bootRun", *config.args]
    return "mvn", ["spring-boot:run", *config.args]


_BUILDERS = {
    "shell": _shell,
    "gradle": _gradle,
    "maven": _maven,
    "node": _node,
    "docker": _docker,
    "spring-boot": _spring_boot,
}


def build_command(config: RunConfig) -> tuple[str, list[str]]:
    """Map a config's type and command text to ``(executable, args)``.

    Raises:
        ValueError: If the config type has no builder.
    """
    builder = _BUILDERS.get(config.type)
    if builder is None:
        raise ValueError(f"No command builder for config type '{config.type}'")
    return builder(config)
