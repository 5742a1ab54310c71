#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

LOCAL_ORGANIZATION_ID = "org-local-university"

# token -> user-info payload, shaped like the identity service's /auth/user-info response
MOCK_USERS: dict[str, dict[str, object]] = {
    "admin-token": {"id": "user-super-admin", "role": "super_admin", "permissions": []},
    "university-token": {
        "id": "user-university",
        "role": "university",
        "university_id": LOCAL_ORGANIZATION_ID,
        "permissions": [],
    },
    "staff-token": {
        "id": "user-university-staff",
        "role": "university_staff",
        "university_id": LOCAL_ORGANIZATION_ID,
        "permissions": ["JOB_CONTRIBUTOR", "SCHOLARSHIP_EDITOR"],
    },
    "mentor-token": {"id": "user-mentor", "role": "mentor", "permissions": []},
    "student-token": {"id": "user-student", "role": "student", "permissions": []},
}


def user_payload_for_token(token: str) -> dict[str, object] | None:
    user = MOCK_USERS.get(token)
    return dict(user) if user is not None else None


class MockAuthHandler(BaseHTTPRequestHandler):
    server_version = "MockAuth/1.0"

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return

        if self.path != "/auth/user-info":
            self._write_json(HTTPStatus.NOT_FOUND, {"message": "not found"})
            return

        authorization = self.headers.get("Authorization", "")
        if not authorization.lower().startswith("bearer "):
            self._write_json(HTTPStatus.UNAUTHORIZED, {"message": "missing bearer token"})
            return

        user = user_payload_for_token(authorization.split(" ", maxsplit=1)[1].strip())
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"message": "invalid token"})
            return

        self._write_json(HTTPStatus.OK, user)

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-auth:", *args)

    def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock identity service serving GET /auth/user-info.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54330)
    args = parser.parse_args()

    server = ThreadingHTTPServer((args.host, args.port), MockAuthHandler)
    print(f"mock-auth listening on http://{args.host}:{args.port} (RS_AUTH_URL)", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
