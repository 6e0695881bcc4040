"""Fake language server scripts, run as `<script> --stdio` by the process tests."""

from __future__ import annotations

FRAMING = '''
import json
import os
import signal
import sys
import time


def read_frame():
    length = None
    while True:
        line = sys.stdin.buffer.readline()
        if not line:
            sys.exit(0)
        line = line.strip()
        if not line:
            if length is not None:
                break
            continue
        name, _, value = line.decode().partition(":")
        if name.strip().lower() == "content-length":
            length = int(value)
    return json.loads(sys.stdin.buffer.read(length))


def write_frame(message):
    body = json.dumps(message).encode()
    sys.stdout.buffer.write(b"Content-Length: %d\\r\\n\\r\\n" % len(body) + body)
    sys.stdout.buffer.flush()


def answer_initialize():
    request = read_frame()
    assert request["method"] == "initialize"
    assert sys.argv[1:] == ["--stdio"]
    write_frame({"jsonrpc": "2.0", "id": request["id"], "result": {"capabilities": {"textDocumentSync": 1}}})
    notification = read_frame()
    params = {"saw": notification["method"]}
    write_frame({"jsonrpc": "2.0", "method": "test/afterHandshake", "params": params})


def serve_forever():
    while True:
        read_frame()
'''

READY = """
answer_initialize()
serve_forever()
"""

SILENT = """
time.sleep(60)
"""

EXIT_EARLY = """
sys.exit(3)
"""

KILLED = """
os.kill(os.getpid(), signal.SIGKILL)
"""

REJECT = """
request = read_frame()
write_frame({"jsonrpc": "2.0", "id": request["id"], "error": {"code": -32603, "message": "boom"}})
serve_forever()
"""

NOISY = """
sys.stdout.write("Starting NPL language server\\n")
sys.stdout.flush()
sys.stderr.write("Content-Length: 2\\n")
sys.stderr.write("Content-Length: 2\\n")
sys.stderr.write("ERROR: could not read workspace\\n")
sys.stderr.write("indexing sources\\n")
sys.stderr.flush()
answer_initialize()
serve_forever()
"""

IGNORES_TERM = """
signal.signal(signal.SIGTERM, signal.SIG_IGN)
answer_initialize()
serve_forever()
"""


LONG_OUTPUT = """
sys.stdout.write("=" * 100_000 + "\\n")
sys.stdout.flush()
sys.stderr.write("x" * 100_000 + "\\n")
for i in range(2000):
    sys.stderr.write("indexing file %05d ...........................................\\n" % i)
sys.stderr.flush()
answer_initialize()
serve_forever()
"""

ECHO_ROOT = """
request = read_frame()
capabilities = {"seenRootUri": request["params"]["rootUri"]}
write_frame({"jsonrpc": "2.0", "id": request["id"], "result": {"capabilities": capabilities}})
serve_forever()
"""
