#!/usr/bin/env python3
"""
Local mock authorization server - for checking the login/logout flow end to end.

Apart from the gateway's own payload decryption, standard library only.

Usage:
  1. python scripts/mock_oauth_server.py
  2. export OAUTH_HOST=http://localhost:9090 API_HOST=http://localhost:9090
     export CLIENT_ID=local-client CLIENT_SECRET=local-secret
  3. start the gateway and open http://localhost:8000/auth/login/profile

Endpoints:
  GET  /v1/authorize, /v2/authorize   -> redirect_uri?code=...&state=...
  POST /v1/tokens                     -> authorization_code / refresh_token grants
  GET  /<anything>/me                 -> mock user (Bearer token)
  GET  /v1|v2/logout/redirect/encrypted -> decrypts `data`, redirects to its redirect_uri
"""

import json
import secrets
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from sso_gateway.core.encryption import PayloadEncryption

# code -> redirect_uri ; access/refresh token -> True
_codes: dict = {}
_tokens: dict = {}
_refresh_tokens: dict = {}

MOCK_USER = {
    "id": "local-user-1",
    "userName": "local",
    "firstName": "Local",
    "lastName": "User",
    "emailWork": "local@test.com",
}

EXPECTED_CLIENT_ID = "local-client"
EXPECTED_CLIENT_SECRET = "local-secret"
TOKEN_LIFETIME_SECONDS = 600

_encryption = PayloadEncryption(EXPECTED_CLIENT_SECRET)


class MockOAuthHandler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        print(f"[MockOAuth] {args[0]}")

    def _redirect(self, location: str):
        self.send_response(302)
        self.send_header("Location", location)
        self.end_headers()

    def _json(self, data: dict, status: int = 200):
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.end_headers()
        self.wfile.write(json.dumps(data).encode("utf-8"))

    def _read_form(self) -> dict:
        length = int(self.headers.get("Content-Length", 0))
        if length == 0:
            return {}
        body = self.rfile.read(length).decode("utf-8")
        return {k: v[0] for k, v in parse_qs(body).items()}

    def _issue_tokens(self) -> dict:
        access_token = "mock_" + secrets.token_urlsafe(16)
        refresh_token = "mock_refresh_" + secrets.token_urlsafe(16)
        _tokens[access_token] = True
        _refresh_tokens[refresh_token] = True
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": TOKEN_LIFETIME_SECONDS,
            "token_type": "Bearer",
        }

    def do_GET(self):
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"
        q = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        if path in ("/v1/authorize", "/v2/authorize"):
            redirect_uri = q.get("redirect_uri", "")
            if not redirect_uri:
                self._json({"error": "redirect_uri required"}, 400)
                return
            if path == "/v2/authorize" and "service" in q:
                self._json({"error": "service is not a v2 parameter"}, 400)
                return
            code = secrets.token_urlsafe(16)
            _codes[code] = redirect_uri
            sep = "&" if "?" in redirect_uri else "?"
            self._redirect(f"{redirect_uri}{sep}code={code}&state={q.get('state', '')}")

        elif path.endswith("/me"):
            auth = self.headers.get("Authorization") or ""
            token = auth[7:] if auth.startswith("Bearer ") else ""
            if token not in _tokens:
                self._json({"error": "invalid token"}, 401)
                return
            self._json(MOCK_USER)

        elif path in ("/v1/logout/redirect/encrypted", "/v2/logout/redirect/encrypted"):
            try:
                payload = _encryption.decrypt(q.get("data", ""))
            except Exception:
                self._json({"error": "invalid data"}, 400)
                return
            _tokens.pop(payload.get("access_token"), None)
            self._redirect(payload["redirect_uri"])

        else:
            self._json({"error": "not found"}, 404)

    def do_POST(self):
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"

        if path != "/v1/tokens":
            self._json({"error": "not found"}, 404)
            return

        data = self._read_form()
        if data.get("client_id") != EXPECTED_CLIENT_ID or data.get("client_secret") != EXPECTED_CLIENT_SECRET:
            self._json({"error": "invalid_client"}, 401)
            return

        grant_type = data.get("grant_type")
        if grant_type == "authorization_code":
            if data.get("code") not in _codes:
                self._json({"error": "invalid_grant", "error_description": "invalid code"}, 400)
                return
            _codes.pop(data["code"])
            self._json(self._issue_tokens())
        elif grant_type == "refresh_token":
            if not _refresh_tokens.pop(data.get("refresh_token"), None):
                self._json({"error": "invalid_grant", "error_description": "invalid refresh token"}, 400)
                return
            self._json(self._issue_tokens())
        else:
            self._json({"error": "unsupported_grant_type"}, 400)


def main():
    port = 9090
    server = HTTPServer(("", port), MockOAuthHandler)
    print(f"Mock OAuth server: http://localhost:{port}")
    print(f"Client ID / Secret: {EXPECTED_CLIENT_ID} / {EXPECTED_CLIENT_SECRET}")
    print("Ctrl+C to quit")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        server.shutdown()


if __name__ == "__main__":
    main()
