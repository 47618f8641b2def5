"""Shared data type definitions (ProofKeyPair, ActionDescriptor)."""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class ProofKeyPair:
    """
    Current and previous proof public keys published by discovery.

    Each key is carried as the raw discovery attributes: a base64 CSP blob
    (`value`) and, when published, the base64 modulus and exponent.
    """
    value: str
    modulus: Optional[str] = None
    exponent: Optional[str] = None
    old_value: Optional[str] = None
    old_modulus: Optional[str] = None
    old_exponent: Optional[str] = None


@dataclass(frozen=True)
class ActionDescriptor:
    """
    A single discovery action (view, edit, ...) for one file extension.
    """
    app: str
    name: str
    ext: str
    urlsrc: str
    is_default: bool = False
    requires: str = ""
    check_license: bool = False
    fav_icon_url: str = ""
    progid: str = ""


@dataclass(frozen=True)
class DiscoveryManifest:
    """
    Parsed discovery document: every action plus the proof key pair.
    """
    actions: List[ActionDescriptor]
    proof_key: Optional[ProofKeyPair]
