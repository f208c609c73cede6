"""
Run the record/playback scenario once and print the report as JSON.
"""

import json
import sys

from media_harness.config import load_settings
from media_harness.logging_config import configure_logging
from media_harness.services.harness import run_harness


def main() -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    report = run_harness(settings)
    print(json.dumps(report.to_dict(), indent=2, default=str))
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
