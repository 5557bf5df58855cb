import re
from dataclasses import dataclass
from pathlib import Path

TELEMETRY_FILENAME = "time.txt"

_MAX_RSS_RE = re.compile(r"Maximum resident set size \(kbytes\):\s*(\d+)", re.IGNORECASE)
_USER_RE = re.compile(r"User time \(seconds\):\s*([\d.]+)", re.IGNORECASE)
_SYS_RE = re.compile(r"System time \(seconds\):\s*([\d.]+)", re.IGNORECASE)


@dataclass(frozen=True)
class ResourceSample:
    peak_memory_kb: int | None = None
    cpu_ms: int | None = None


def parse_time_report(text: str) -> ResourceSample:
    """Extract peak RSS and user+system CPU time from GNU ``time -v`` output."""
    if not text:
        return ResourceSample()
    peak = None
    cpu = None
    m = _MAX_RSS_RE.search(text)
    if m:
        peak = int(m.group(1))
    usr = _USER_RE.search(text)
    sys_ = _SYS_RE.search(text)
    if usr and sys_:
        try:
            cpu = round((float(usr.group(1)) + float(sys_.group(1))) * 1000)
        except ValueError:
            cpu = None
    return ResourceSample(peak_memory_kb=peak, cpu_ms=cpu)


def sample_workspace(workspace: Path) -> ResourceSample:
    path = workspace / TELEMETRY_FILENAME
    try:
        raw = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ResourceSample()
    return parse_time_report(raw)
