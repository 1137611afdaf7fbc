"""
Capture orchestration engine for Field Capture Service.

Package structure:
    fieldcapture/
    ├── config.py           # Config (JSON) and validated CaptureSettings
    ├── logger.py           # app_logger singleton
    ├── errors.py           # Error taxonomy
    ├── session_manager.py  # Device session lifecycle, retry/backoff, event pump
    ├── reconciliation.py   # Dedup + download + device cleanup
    ├── sequence_runner.py  # One burst of N frames
    ├── scheduler.py        # Operating hours / interval gating, single-flight guard
    ├── keep_alive.py       # Capture+delete cycle between bursts
    ├── interference.py     # Terminates competing vendor utilities
    ├── headless_runner.py  # Wires everything together for the service process
    └── device/             # Device capability interface and backends
"""
