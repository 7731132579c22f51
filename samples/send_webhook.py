"""Send a signed test webhook to a running autofix server.

The payload mimics an ``event_alert`` delivery. The signature is computed with
the same secret the server reads from ``WEBHOOK_SECRET``.

Example:
    WEBHOOK_SECRET=dev python samples/send_webhook.py \
        --url http://localhost:8000/webhook/monitor \
        --project web-api --issue-id 4242
"""

from __future__ import annotations

import argparse
import hashlib
import hmac
import json
import logging
import os
from typing import Any

import httpx

LOGGER = logging.getLogger("autofix.samples")
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

DEFAULT_TIMEOUT = 10.0


def build_event_alert(project: str, issue_id: str, title: str) -> dict[str, Any]:
    return {
        "action": "triggered",
        "data": {
            "event": {
                "issue_id": issue_id,
                "event_id": "0" * 32,
                "title": title,
                "message": title,
                "level": "error",
                "platform": "python",
                "culprit": "app.handlers in handle_request",
                "project_slug": project,
                "tags": [["environment", "production"]],
                "exception": {
                    "values": [
                        {
                            "type": "ZeroDivisionError",
                            "value": "division by zero",
                            "stacktrace": {
                                "frames": [
                                    {
                                        "filename": "app/handlers.py",
                                        "function": "handle_request",
                                        "lineno": 42,
                                        "in_app": True,
                                        "context_line": "    return total / count",
                                    }
                                ]
                            },
                        }
                    ]
                },
            },
            "triggered_rule": "Send to autofix",
        },
    }


def sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a signed test webhook")
    parser.add_argument("--url", default="http://localhost:8000/webhook/monitor")
    parser.add_argument("--project", required=True, help="Project slug mapped on the server")
    parser.add_argument("--issue-id", default="4242")
    parser.add_argument("--title", default="ZeroDivisionError: division by zero")
    parser.add_argument("--secret", default=os.getenv("WEBHOOK_SECRET"))
    args = parser.parse_args()

    if not args.secret:
        parser.error("--secret or WEBHOOK_SECRET is required")

    body = json.dumps(build_event_alert(args.project, args.issue_id, args.title)).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "X-Hook-Resource": "event_alert",
        "X-Hook-Signature": sign(body, args.secret),
    }
    response = httpx.post(args.url, content=body, headers=headers, timeout=DEFAULT_TIMEOUT)
    LOGGER.info("Server replied %s: %s", response.status_code, response.text)
    response.raise_for_status()


if __name__ == "__main__":
    main()
