"""Ingestion service entrypoint.

Subscribes to soil moisture telemetry over MQTT, persists readings,
streams them to live observers, alerts on sustained low moisture and
archives readings to cold storage every hour.

Usage: python -m soilmon.ingest
"""

import sys

from soilmon.ingest.service import main

if __name__ == "__main__":
    sys.exit(main())
