"""
Decoding of scanned QR payloads.

An invitation QR code carries a JSON object:

    {"type": "visitor_invitation", "invitation_id": "<id>"}
"""

import json
import logging
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

INVITATION_PAYLOAD_TYPE = "visitor_invitation"


class InvitationReference(NamedTuple):
    invitation_id: str


# PUBLIC_INTERFACE
def parse_qr_data(qr_data) -> Optional[InvitationReference]:
    """
    Returns the invitation reference encoded in `qr_data`, or None when the
    text is not a visitor invitation code. Never raises.
    """
    try:
        data = json.loads(qr_data)
    except (TypeError, ValueError, RecursionError):
        # RecursionError: deeply nested arrays/objects
        logger.debug("QR payload is not JSON")
        return None

    if not isinstance(data, dict) or data.get("type") != INVITATION_PAYLOAD_TYPE:
        logger.debug("QR payload is not a visitor invitation")
        return None

    invitation_id = data.get("invitation_id")
    if not isinstance(invitation_id, str) or not invitation_id.strip():
        logger.debug("QR payload has no invitation id")
        return None

    return InvitationReference(invitation_id=invitation_id)


# PUBLIC_INTERFACE
def build_qr_data(invitation_id: str) -> str:
    """Encodes the payload an issuer prints into the invitation QR code."""
    return json.dumps({"type": INVITATION_PAYLOAD_TYPE, "invitation_id": invitation_id})
