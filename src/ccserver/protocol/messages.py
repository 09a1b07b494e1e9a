"""
Wire literals shared by the server and the client helpers.

    UDP discovery:
        client ──► broadcast:PORT   b"CCS DISCOVER"
        server ──► client:srcport   b"CCS FOUND"

    TCP requests (same PORT number):
        client ──► "ADD 2 3\\n"
        server ──► "5\\n"       or      "ERROR\\n"
"""

DISCOVERY_PROBE = b"CCS DISCOVER"
DISCOVERY_REPLY = b"CCS FOUND"

# Datagrams longer than the probe are dropped without being decoded.
DISCOVERY_MAX_SIZE = len(DISCOVERY_PROBE)

ERROR_REPLY = "ERROR"

LINE_TERMINATOR = b"\n"
ENCODING = "utf-8"
