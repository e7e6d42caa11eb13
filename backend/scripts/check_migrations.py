import subprocess
import sys
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory

BACKEND_DIR = Path(__file__).resolve().parents[1]


def alembic_heads(backend_dir: Path = BACKEND_DIR) -> list[str]:
    cfg = Config(str(backend_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(backend_dir / "alembic"))
    return list(ScriptDirectory.from_config(cfg).get_heads())


def check_single_head() -> bool:
    heads = alembic_heads()
    if len(heads) != 1:
        print(f"[FAIL] alembic heads={len(heads)} -> {heads}")
        return False
    print(f"[OK] alembic single head: {heads[0]}")
    return True


def check_drift() -> bool:
    # needs a reachable DATABASE_URL at the current head
    proc = subprocess.run(
        [sys.executable, "-m", "alembic", "check"],
        cwd=str(BACKEND_DIR),
        capture_output=True,
        text=True,
    )
    if proc.stdout:
        print(proc.stdout.strip())
    if proc.returncode != 0:
        print(proc.stderr.strip(), file=sys.stderr)
        print("[FAIL] models and migrations differ; add a migration", file=sys.stderr)
        return False
    print("[OK] no schema drift")
    return True


def main(argv: list[str]) -> int:
    ok = check_single_head()
    if ok and "--drift" in argv:
        ok = check_drift()
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
