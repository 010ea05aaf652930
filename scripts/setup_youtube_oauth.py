#!/usr/bin/env python3
"""
YouTube OAuth Setup
===================
Authorises Autotube to upload and schedule videos on your channel. A browser
window opens for Google sign-in; the resulting token is stored at
~/.autotube/youtube_token.json (or $AUTOTUBE_HOME/youtube_token.json).

Before running, create OAuth 2.0 credentials of type "Desktop app" for a
Google Cloud project with the YouTube Data API v3 enabled, and download
the client_secret.json file.

Usage:
  python3 scripts/setup_youtube_oauth.py [path/to/client_secret.json]
"""

import os
import stat
import sys
from pathlib import Path

from google_auth_oauthlib.flow import InstalledAppFlow

# upload + captions/thumbnails (force-ssl is narrower than the full youtube scope)
SCOPES = [
    "https://www.googleapis.com/auth/youtube.upload",
    "https://www.googleapis.com/auth/youtube.force-ssl",
]

HOME_DIR = Path(os.environ.get("AUTOTUBE_HOME", Path.home() / ".autotube"))
TOKEN_PATH = HOME_DIR / "youtube_token.json"


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    HOME_DIR.mkdir(parents=True, exist_ok=True)

    print("Autotube — YouTube OAuth Setup")
    print("=" * 50)

    if argv:
        client_secrets = argv[0]
    else:
        print("\nGoogle Cloud Console → APIs & Services → Credentials →")
        print("OAuth 2.0 Client ID (Desktop app) → Download JSON\n")
        client_secrets = input("Path to your client_secret.json: ").strip()
    client_secrets = Path(client_secrets).expanduser()

    if not client_secrets.exists():
        print(f"File not found: {client_secrets}")
        sys.exit(1)

    print("\nOpening browser for Google sign-in...")
    flow = InstalledAppFlow.from_client_secrets_file(str(client_secrets), SCOPES)
    creds = flow.run_local_server(port=0)

    TOKEN_PATH.write_text(creds.to_json())
    TOKEN_PATH.chmod(stat.S_IRUSR | stat.S_IWUSR)
    print(f"\nToken saved to {TOKEN_PATH}")
    print("Scheduled publishing is ready: python -m autotube run")


if __name__ == "__main__":
    main()
