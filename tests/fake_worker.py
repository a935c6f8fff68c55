"""
Stand-in worker process for session bridge tests.

Echoes each JSON-RPC request back as a result. Special methods:
  silent -> no reply
  exit   -> exit without replying
  split  -> reply written in two chunks with a pause in between
  noisy  -> a non-JSON line, then the reply
  stderr -> write to stderr, then reply
"""

import json
import sys
import time


def reply(msg):
    return json.dumps({"jsonrpc": "2.0", "id": msg.get("id"), "result": {"echo": msg}}) + "\n"


def main():
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        msg = json.loads(line)
        method = msg.get("method") if isinstance(msg, dict) else None
        if method == "silent":
            continue
        if method == "exit":
            sys.exit(3)
        out = reply(msg if isinstance(msg, dict) else {"value": msg})
        if method == "split":
            half = len(out) // 2
            sys.stdout.write(out[:half])
            sys.stdout.flush()
            time.sleep(0.2)
            sys.stdout.write(out[half:])
        elif method == "noisy":
            sys.stdout.write("not json at all\n" + out)
        elif method == "stderr":
            sys.stderr.write("diagnostic from worker\n")
            sys.stderr.flush()
            sys.stdout.write(out)
        else:
            sys.stdout.write(out)
        sys.stdout.flush()


if __name__ == "__main__":
    main()
