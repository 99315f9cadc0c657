"""Format and lint the SOP chat backend with ruff."""

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent

# Each entry is one ruff invocation; targets are appended
RUFF_STEPS = [
    ["format"],
    # Whitespace and blank-line fixes are safe to apply unattended
    ["check", "--preview", "--fix", "--unsafe-fixes", "--select", "W291,W293,E3"],
    ["check", "--fix", "--ignore", "E501"],
]


def _targets() -> list[str]:
    tests = sorted(str(p.relative_to(ROOT)) for p in ROOT.glob("test_*.py"))
    return ["sopchat/", "scripts/", "llm_fakes.py", *tests]


def main() -> None:
    targets = _targets()
    for step in RUFF_STEPS:
        try:
            subprocess.run(["uv", "run", "ruff", *step, *targets], check=True, cwd=ROOT)
        except subprocess.CalledProcessError as e:
            print(f"ruff {step[0]} failed with exit code {e.returncode}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
