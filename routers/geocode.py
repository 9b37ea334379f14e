import math
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from geocoding import GeocodeError, GeocoderDep

router = APIRouter(tags=["geocode"])


def _parse_coordinate(raw: str) -> Optional[float]:
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


@router.get("/reverse")
def reverse_geocode(
    geocoder: GeocoderDep,
    lat: Optional[str] = None,
    lng: Optional[str] = None,
):
    """
    Address for a coordinate. Repeated lookups within the cache window
    answer with `cached: true`.
    """
    if not lat or not lng:
        return JSONResponse({"error": "Missing lat/lng"}, status_code=400)
    lat_value, lng_value = _parse_coordinate(lat), _parse_coordinate(lng)
    if lat_value is None or lng_value is None:
        return JSONResponse({"error": "Invalid lat/lng"}, status_code=400)

    try:
        return geocoder.reverse(lat_value, lng_value)
    except GeocodeError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@router.get("/search")
def forward_geocode(geocoder: GeocoderDep, q: str = ""):
    try:
        lat, lng, display_name = geocoder.search(q)
    except GeocodeError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    return {"lat": lat, "lng": lng, "display_name": display_name}
