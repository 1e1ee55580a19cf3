"""
Deep links into the opencode web UI.

The web UI addresses a project by its working directory, encoded as
URL-safe base64 without padding, so a session view is:

    http://{host}:{port}/{encoded_dir}/session/{agent_session_id}
"""

import base64
from typing import Optional


def encode_directory(path: str) -> str:
    """Encode a working directory path as an unpadded URL-safe base64 segment."""
    encoded = base64.urlsafe_b64encode(path.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def build_link(
    host: str,
    port: int,
    working_directory_path: str,
    agent_session_id: Optional[str] = None,
) -> str:
    """Build a link to an agent session's web view.

    Pure function - deterministic for identical inputs.

    Without an agent session id the link points at the session list for
    the working directory instead.
    """
    base = f"http://{host}:{port}/{encode_directory(working_directory_path)}/session"
    if agent_session_id:
        return f"{base}/{agent_session_id}"
    return base
