"""Host name resolution for reported series."""
import logging
import socket
from typing import Optional

import requests

logger = logging.getLogger(__name__)

EC2_INSTANCE_ID_URL = "http://169.254.169.254/latest/meta-data/instance-id"


def get_ec2_instance_id(timeout_s: float = 1.0, session: Optional[requests.Session] = None) -> str:
    """Fetch the instance id from the EC2 metadata service."""
    http = session or requests
    response = http.get(EC2_INSTANCE_ID_URL, timeout=timeout_s)
    response.raise_for_status()
    return response.text.strip()


def resolve_host(host: Optional[str], session: Optional[requests.Session] = None) -> str:
    """
    Resolve the configured host name.

    ``None`` means the local host name; ``"ec2"`` means the EC2 instance
    id, falling back to the local host name when metadata is unreachable.
    """
    if host is None:
        return socket.gethostname()

    if host.lower() == "ec2":
        try:
            return get_ec2_instance_id(session=session)
        except requests.RequestException as e:
            logger.warning(f"EC2 instance id unavailable, using local hostname: {e}")
            return socket.gethostname()

    return host
