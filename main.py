"""allostat — CLI entry point."""

import sys

from allostat import analyze, generate_report
from allostat.logging_config import setup_logging

if __name__ == "__main__":
    setup_logging()
    path = sys.argv[1] if len(sys.argv) > 1 else "sample_data.json"
    result = analyze(path)
    print(generate_report(result))
