import argparse
import json
import os


def _load_app():
    # no store is touched: lifespan does not run for app.openapi()
    os.environ.setdefault("STORE_BACKEND", "memory")
    from bucketbridge.main import app
    return app


def _spec_text():
    app = _load_app()
    spec = app.openapi()
    return json.dumps(spec, indent=2, sort_keys=True) + "\n"


def _write(path: str) -> str:
    text = _spec_text()
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return text


def _check(path: str) -> bool:
    want = _spec_text()
    try:
        with open(path, "r", encoding="utf-8") as f:
            have = f.read()
    except FileNotFoundError:
        return False
    return have == want


def main(argv=None):
    ap = argparse.ArgumentParser(prog="bucketbridge.openapi_tool")
    ap.add_argument("--out", default="openapi.json")
    ap.add_argument("--check", action="store_true")
    a = ap.parse_args(argv)
    if a.check:
        if not _check(a.out):
            print(
                "openapi.json out of date. Regenerate with:\n"
                f"  python -m bucketbridge.openapi_tool --out {a.out}"
            )
            raise SystemExit(1)
        print("openapi.json up-to-date")
    else:
        text = _write(a.out)
        print(f"Wrote {a.out} ({len(text)} bytes)")


if __name__ == "__main__":
    main()
