"""
Geo Validation Service

Submits a client's land parcel polygon to the geo WPS endpoint, tagged with
the client id, and returns whatever analysis result the service produced.
"""
import logging
from typing import Any, List, Optional

import requests

from ... import config
from ...errors import GeoServiceError, ValidationError

logger = logging.getLogger(__name__)


def parcel_points(polygon: List[Any]) -> List[List[float]]:
    """
    Normalise polygon points to [lng, lat]. A third coordinate (altitude) is
    dropped. Raises ValidationError naming every malformed point.
    """
    if not isinstance(polygon, (list, tuple)):
        raise ValidationError(["Parcel polygon must be a list of [longitude, latitude] points"])

    points, errors = [], []
    for index, point in enumerate(polygon):
        try:
            if isinstance(point, (str, bytes)) or len(point) < 2:
                raise ValueError
            lng, lat = float(point[0]), float(point[1])
        except (TypeError, ValueError):
            errors.append(f"Parcel point {index + 1} is not a [longitude, latitude] pair: {point!r}")
            continue
        points.append([lng, lat])
    if errors:
        raise ValidationError(errors)
    return points


class GeoValidationService:

    def __init__(self, url: Optional[str] = None, session: Optional[requests.Session] = None, timeout: float = None):
        self.url = url if url is not None else config.GEO_WPS_URL
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.GEO_TIMEOUT

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def submit_parcel(self, polygon: List[List[float]], tag: str) -> Optional[Any]:
        """
        Returns the service result, or None when no service is configured or
        the polygon is empty. Raises GeoServiceError on transport failure.
        """
        if not self.enabled or not polygon:
            return None

        if len(polygon) < 3:
            raise ValidationError([f"Parcel polygon needs at least 3 points, got {len(polygon)}"])

        payload = {"tag": tag, "polygon": parcel_points(polygon)}
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Geo WPS submission for {tag} failed: {e}")
            raise GeoServiceError(f"Geo service request failed: {e}")

        try:
            return response.json()
        except ValueError:
            return response.text or None
