#!/usr/bin/env python
"""Generate the OpenAPI spec JSON.

Usage:
  python backend/scripts/generate_spec.py --out backend/openapi.json
  python backend/scripts/generate_spec.py            # print the spec hash

Exit Codes:
  0 success
  2 hash mismatch in --check mode
"""
from __future__ import annotations
import argparse, json, hashlib, os, pathlib, sys

sys.path.append(os.path.abspath('backend'))

from mutka.openapi_builder import build_openapi_spec  # type: ignore


def compute_spec_and_hash():
    spec = build_openapi_spec()
    blob = json.dumps(spec, sort_keys=True, separators=(',', ':')).encode()
    return spec, hashlib.sha256(blob).hexdigest()


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(description="Generate deterministic OpenAPI spec")
    p.add_argument('--out', dest='out', help='Path to write JSON spec')
    p.add_argument('--check', metavar='HASH', help='Exit 2 if the current spec hash differs from HASH')
    args = p.parse_args(argv)

    spec, h = compute_spec_and_hash()
    if args.out:
        out_path = pathlib.Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(spec, indent=2, sort_keys=True) + '\n')
        print(f"Wrote spec JSON to {out_path} ({len(spec['paths'])} paths)")
    if args.check:
        if h != args.check:
            print(f"Spec hash mismatch: expected={args.check} current={h}", file=sys.stderr)
            return 2
        print(f"Spec hash OK: {h}")
    if not args.out and not args.check:
        print(h)
    return 0


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
