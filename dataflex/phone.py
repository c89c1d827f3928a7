"""
DataFlex — Phone & Network Utilities
─────────────────────────────────────
Pure functions. No side effects. No data fetching.
Ghana MSISDN handling for data-bundle orders.

Local format is 10 digits starting with 0 (e.g. 0241234567).
International 233XXXXXXXXX and bare 9-digit numbers are normalised to it.
"""

import re
from typing import Dict, List, Optional

PHONE_PATTERN = re.compile(r"^0[2345]\d{8}$")
SPLIT_PATTERN = re.compile(r"[\s,;|\t]+")
# Leading number, so "5", "5.5" and "5GB" all parse
CAPACITY_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)")

# ── Network prefixes ───────────────────────────────────────────
NETWORK_PREFIXES: Dict[str, tuple] = {
    "MTN":        ("024", "025", "053", "054", "055", "059"),
    "AirtelTigo": ("026", "027", "056", "057"),
    "Telecel":    ("020", "050"),
}
NETWORKS = tuple(NETWORK_PREFIXES)
UNKNOWN_NETWORK = "Unknown"


def normalize_phone_number(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 12 and digits.startswith("233"):
        return "0" + digits[3:]
    if len(digits) == 9:
        return "0" + digits
    if len(digits) == 10 and digits.startswith("0"):
        return digits
    # Possibly invalid; validate_phone_number() decides.
    return digits[:10]


def validate_phone_number(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(normalize_phone_number(phone)))


def detect_network(phone: str) -> str:
    prefix = normalize_phone_number(phone)[:3]
    for network, prefixes in NETWORK_PREFIXES.items():
        if prefix in prefixes:
            return network
    return UNKNOWN_NETWORK


# ── Bulk orders ────────────────────────────────────────────────

def validate_bulk_order_row(phone: str, capacity: str, network: Optional[str] = None) -> dict:
    """
    Returns {"valid": True, "phone", "capacity", "network"} or
    {"valid": False, "error"}. Network is auto-detected when not given.
    """
    normalized = normalize_phone_number(phone)
    if not PHONE_PATTERN.match(normalized):
        return {"valid": False, "error": f"Invalid phone: {phone}"}

    match = CAPACITY_PATTERN.match(str(capacity or ""))
    capacity_gb = float(match.group(1)) if match else 0.0
    if capacity_gb <= 0:
        return {"valid": False, "error": f"Invalid capacity: {capacity}"}

    if network and network not in NETWORKS:
        return {"valid": False, "error": f"Invalid network: {network}"}

    return {
        "valid":    True,
        "phone":    normalized,
        "capacity": capacity_gb,
        "network":  network or detect_network(normalized),
    }


def parse_bulk_orders(text: str, skip_header: bool = False) -> List[dict]:
    """One order per line: '<phone> <capacity>' separated by space, comma, tab, ; or |."""
    lines = [line.strip() for line in (text or "").splitlines()]
    if skip_header and lines:
        lines = lines[1:]
    orders = []
    for raw in lines:
        if not raw:
            continue
        parts = [p for p in SPLIT_PATTERN.split(raw) if p]
        orders.append({
            "phone":    parts[0] if parts else "",
            "capacity": parts[1] if len(parts) > 1 else "",
            "raw":      raw,
        })
    return orders
