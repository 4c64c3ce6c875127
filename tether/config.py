"""
Configuration constants for the Tether coordinator and peer agent.
"""

import os
import platform

# --- Networking ---
TCP_PORT = 5555              # Default coordinator port
BUFFER_SIZE = 64 * 1024      # Largest single socket read
HANDSHAKE_TIMEOUT = 10       # Seconds a new connection has to send its name
MAX_NAME_SIZE = 4 * 1024     # Largest identity frame accepted
MAX_PEERS = 50               # Simultaneous peer sessions accepted

# --- Protocol ---
# Upper bound on a single frame.  Archives and screenshots travel as one
# frame, so this is far above control-message size.
MAX_FRAME_SIZE = 256 * 1024 * 1024  # 256 MB
LISTING_CHUNK_SIZE = 64 * 1024      # Split long directory listings into frames

# --- Reply timeouts (seconds) ---
LIST_TIMEOUT = 5
DOWNLOAD_TIMEOUT = 60
SCREENSHOT_TIMEOUT = 10
LISTING_LINGER = 0.25        # Wait this long for further listing frames

# --- Sessions ---
MAILBOX_CAPACITY = 1024      # Undelivered frames held per peer
DEFAULT_DIRECTORY = os.path.abspath(os.sep)

# --- File Storage ---
DOWNLOADS_DIR = "downloads"
SCREENSHOTS_DIR = "screenshots"

# --- Identity ---
PEER_NAME = platform.node() or "peer"
