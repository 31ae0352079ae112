from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import exifread
from geopy.exc import GeopyError
from geopy.geocoders import Nominatim
from loguru import logger
from PIL import Image, IptcImagePlugin


@dataclass
class PhotoMeta:
    latitude: Optional[float]
    longitude: Optional[float]

    @property
    def has_gps(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def coordinates(self) -> Optional[str]:
        if not self.has_gps:
            return None
        return f"{self.latitude:.6f}, {self.longitude:.6f}"


def _dms_to_decimal(values) -> float:
    d, m, s = (float(v) for v in values[:3])
    return d + m / 60.0 + s / 3600.0


def extract_exif_metadata(path: str) -> PhotoMeta:
    lat: Optional[float] = None
    lon: Optional[float] = None
    try:
        with open(path, "rb") as f:
            tags = exifread.process_file(f, details=False)

        if "GPS GPSLatitude" in tags and "GPS GPSLongitude" in tags:
            lat = _dms_to_decimal(tags["GPS GPSLatitude"].values)
            lon = _dms_to_decimal(tags["GPS GPSLongitude"].values)
            lat_ref = str(tags.get("GPS GPSLatitudeRef", "N")).strip()
            lon_ref = str(tags.get("GPS GPSLongitudeRef", "E")).strip()
            if lat_ref == "S":
                lat = -lat
            if lon_ref == "W":
                lon = -lon
    except (OSError, ValueError, ZeroDivisionError, IndexError, KeyError) as e:
        # EXIF 损坏或没有 GPS 都不影响上传
        logger.debug("读取图片 EXIF 信息失败 {}: {}", path, e)
        lat = lon = None

    return PhotoMeta(latitude=lat, longitude=lon)


def reverse_geocode(meta: PhotoMeta, timeout: float = 5.0) -> Optional[str]:
    if not meta.has_gps:
        return None
    try:
        geolocator = Nominatim(user_agent="aurodiary")
        place = geolocator.reverse((meta.latitude, meta.longitude), language="zh", timeout=timeout)
    except GeopyError as e:
        logger.warning("逆地理编码失败: {}", e)
        return None
    if place is None:
        return None
    addr = place.raw.get("address", {}) if isinstance(place.raw, dict) else {}
    city = addr.get("city") or addr.get("town") or addr.get("county") or addr.get("state") or ""
    district = addr.get("suburb") or addr.get("district") or ""
    if city and district:
        return f"{city} · {district}"
    return city or district or place.address


IPTC_CITY = (2, 90)
XMP_CITY_RE = re.compile(rb"photoshop:City(?:\s*=\s*\"([^\"]*)\"|>([^<]*)<)")


def _decode(value) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else b""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value or "").strip()


def extract_city(path: str) -> Optional[str]:
    """City name written by the camera or an editor, from IPTC or XMP."""
    try:
        with Image.open(path) as img:
            iptc = IptcImagePlugin.getiptcinfo(img) or {}
            xmp = img.info.get("xmp") or b""
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        logger.debug("读取图片城市信息失败 {}: {}", path, e)
        return None

    city = _decode(iptc.get(IPTC_CITY))
    if city:
        return city
    if isinstance(xmp, str):
        xmp = xmp.encode("utf-8")
    m = XMP_CITY_RE.search(xmp)
    if m:
        return _decode(m.group(1) or m.group(2)) or None
    return None


def extract_location_from_image(path: str, use_geocoder: bool = False) -> Optional[str]:
    """GPS (place name or coordinates) first, then the embedded city name."""
    meta = extract_exif_metadata(path)
    if not meta.has_gps:
        return extract_city(path)
    if use_geocoder:
        name = reverse_geocode(meta)
        if name:
            return name
    return meta.coordinates()
