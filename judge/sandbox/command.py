from dataclasses import dataclass

from judge.config import SandboxSettings


@dataclass(frozen=True)
class ResourceLimits:
    cpus: float = 1.0
    memory: str = "512m"
    pids_limit: int = 256

    @classmethod
    def from_settings(cls, settings: SandboxSettings) -> "ResourceLimits":
        return cls(cpus=settings.cpus, memory=settings.memory, pids_limit=settings.pids_limit)


def build_docker_command(
    image: str,
    workdir: str,
    args: list[str],
    limits: ResourceLimits | None = None,
    mount_path: str = "/code",
    name: str | None = None,
    docker_bin: str = "docker",
) -> list[str]:
    """Build an isolated ``docker run`` invocation for one sandbox stage.

    No network or capabilities, fixed CPU/memory/pid ceilings with swap pinned
    to the memory limit. The workspace is bind-mounted read-write at
    ``mount_path`` and used as the working directory.
    """
    limits = limits or ResourceLimits()
    cmd = [
        docker_bin, "run",
        "--rm",
        "--network", "none",
        "--cpus", str(limits.cpus),
        "--memory", str(limits.memory),
        "--memory-swap", str(limits.memory),
        "--pids-limit", str(limits.pids_limit),
        "--security-opt", "no-new-privileges:true",
        "--cap-drop", "ALL",
        "-v", f"{workdir}:{mount_path}:rw",
        "-w", mount_path,
    ]
    if name:
        cmd += ["--name", name]
    cmd.append(image)
    cmd.extend(args)
    return cmd
