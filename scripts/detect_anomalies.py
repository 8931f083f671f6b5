#!/usr/bin/env python3
"""Run anomaly detection on a JSON payload and print the result.

Input format (file or stdin):
    {
        "instrument": "BTCUSD",
        "current": {"price": 130.0, "volume": 1200.0},
        "history": [{"price": 100.0, "volume": 1000.0, "timestamp": 1704067200000}, ...]
    }

Usage:
    python -m scripts.detect_anomalies payload.json
    cat payload.json | python -m scripts.detect_anomalies -

Exit codes:
    0 - evaluated (with or without findings)
    1 - malformed input
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

from pydantic import ValidationError

# Ensure imports work when invoked as a script
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from api.routes.anomaly import AnomalyRequest  # noqa: E402
from core.anomaly.config import get_config  # noqa: E402
from core.anomaly.errors import MalformedInputError  # noqa: E402
from core.anomaly.evaluator import evaluate  # noqa: E402

logger = logging.getLogger("detect_anomalies")


def run(payload: Any, out: TextIO) -> int:
    """Validate and evaluate one payload, writing the result JSON to out."""
    try:
        request = AnomalyRequest.model_validate(payload).to_evaluation_request()
        result = evaluate(request.instrument, request.current, request.history, config=get_config())
    except ValidationError as exc:
        logger.error(f"Invalid payload: {exc.error_count()} validation errors")
        for err in exc.errors():
            field = ".".join(str(part) for part in err["loc"])
            print(f"❌ {field}: {err['msg']}", file=sys.stderr)
        return 1
    except MalformedInputError as exc:
        print(f"❌ {exc.field}: {exc}", file=sys.stderr)
        return 1

    json.dump(result.to_dict(), out, indent=2)
    out.write("\n")
    if not result.summary.has_findings:
        logger.info(f"{result.instrument}: monitoring, no anomalies")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Detect price/volume anomalies for one instrument")
    parser.add_argument("payload", help="Path to JSON payload, or - for stdin")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.payload == "-":
            payload = json.load(sys.stdin)
        else:
            with open(args.payload) as f:
                payload = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        print(f"❌ Could not read payload: {exc}", file=sys.stderr)
        return 1

    return run(payload, sys.stdout)


if __name__ == "__main__":
    sys.exit(main())
