# memo_mirror/memo_api/utils.py
#
#
# Imports
import hashlib
import re
from typing import Dict, Mapping
#
# 3rd-party Libraries
from bs4 import BeautifulSoup
#
#######################################################################################################################
#
# Functions:

BLOCK_TAGS = ["p", "div", "li", "ul", "ol", "blockquote", "pre", "h1", "h2", "h3", "h4", "h5", "h6"]


def sign_params(params: Mapping[str, str], salt: str) -> str:
    """
    Request signature expected by the API: MD5 over "k=v" pairs joined with "&",
    keys sorted, with the salt appended.
    """
    param_str = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.md5(f"{param_str}{salt}".encode("utf-8")).hexdigest()


def with_signature(params: Dict[str, str], salt: str) -> Dict[str, str]:
    """Copy of params with the "sign" entry added."""
    signed = dict(params)
    signed["sign"] = sign_params(params, salt)
    return signed


def html_to_text(html: str) -> str:
    """
    Convert memo HTML into plain text.

    Block elements end with a newline, <br> becomes a newline and list items
    get a "- " bullet. Runs of blank lines are collapsed to one.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for item in soup.find_all("li"):
        item.insert(0, "- ")
    for block in soup.find_all(BLOCK_TAGS):
        block.append("\n")
    text = "\n".join(line.rstrip() for line in soup.get_text().splitlines())
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def normalize_bearer_token(token: str) -> str:
    """Prefix the token with "Bearer " unless it already has it."""
    token = token.strip()
    return token if token.startswith("Bearer ") else f"Bearer {token}"

#
# End of utils.py
#######################################################################################################################
