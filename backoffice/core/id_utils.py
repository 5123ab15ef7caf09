import re

import shortuuid


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def generate_short_token(length: int = 12) -> str:
    return shortuuid.ShortUUID().random(length=length)


def invoice_prefix_from_name(name: str) -> str:
    letters = re.sub(r"[^A-Za-z0-9]+", "", name).upper()
    return letters[:4] or "INV"
