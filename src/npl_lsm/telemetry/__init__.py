"""Telemetry domain: operational logging for the binary lifecycle.

Structure:
    system/         System operational logs (console + system.jsonl)
                    - download, update check, spawn and handshake events
"""

__all__: list[str] = []
