"""TOFU implementation.

Gemini servers mostly use self-signed certificates, so instead of validating
them against certificate authorities, the fingerprint of the certificate
presented the first time a host is visited is pinned, and later connections
are refused if the host presents another certificate before the pinned one
expires.

The TLS handshake itself (the server proving it owns the certificate's key)
is verified by OpenSSL no matter the trust policy used.
"""

import datetime
import hashlib
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import asn1crypto.x509

from gemlink.errors import IdentityChanged, SignatureInvalid

STASH_LINE_RE = re.compile(r"(\S+) (\S+) (\S+) (\d+)")
FINGERPRINT_ALGO = "sha512"
# Minimum lifetime of a pin, so certificates that are expired or about to
# expire stay pinned.
MIN_PIN_DURATION = 30 * 24 * 3600


@dataclass
class StashEntry:
    """A pinned certificate.

    - algo: the fingerprint algorithm (only SHA-512 is supported).
    - fingerprint: the fingerprint as an hexstring.
    - timestamp: expiration date of the pin, at least MIN_PIN_DURATION
      after pinning.
    - permanent: False for certificates trusted for the session only; only
      permanent entries are written back to the stash file.
    """
    algo: str
    fingerprint: str
    timestamp: int
    permanent: bool = True


class CertStash:
    """Host names mapped to their pinned certificate.

    Each host has its own lock, held while its entry is checked and updated,
    so two concurrent first contacts with a host can't pin two certificates.
    """

    def __init__(self, entries: Optional[Dict[str, StashEntry]] =None):
        self.entries = dict(entries or {})
        self._locks = {}
        self._locks_lock = threading.Lock()

    def __contains__(self, hostname):
        return hostname in self.entries

    def __len__(self):
        return len(self.entries)

    def host_lock(self, hostname: str) -> threading.Lock:
        with self._locks_lock:
            return self._locks.setdefault(hostname, threading.Lock())

    def get(self, hostname: str) -> Optional[StashEntry]:
        return self.entries.get(hostname)

    def trust(self, hostname: str, algo: str, fingerprint: str,
              timestamp: int, permanent: bool =True):
        self.entries[hostname] = \
            StashEntry(algo, fingerprint, timestamp, permanent)


def load_cert_stash(stash_path: Path) -> Optional[CertStash]:
    """Load the certificate stash from the file, or None on error."""
    entries = {}
    try:
        with open(stash_path, "rt") as stash_file:
            for line in stash_file:
                match = STASH_LINE_RE.match(line)
                if not match:
                    continue
                name, algo, fingerprint, timestamp = match.groups()
                entries[name] = StashEntry(algo, fingerprint, int(timestamp))
    except (OSError, ValueError) as exc:
        logging.error(f"Could not load cert stash {stash_path}: {exc}")
        return None
    return CertStash(entries)


def save_cert_stash(stash: CertStash, stash_path: Path) -> bool:
    """Save permanent entries of the stash; return True on success."""
    try:
        with open(stash_path, "wt") as stash_file:
            for name, entry in sorted(stash.entries.items()):
                if not entry.permanent:
                    continue
                entry_line = (
                    f"{name} {entry.algo} {entry.fingerprint} "
                    f"{entry.timestamp}\n"
                )
                stash_file.write(entry_line)
    except OSError as exc:
        logging.error(f"Could not save cert stash {stash_path}: {exc}")
        return False
    return True


class CertStatus(Enum):
    """Value returned by trust policies."""
    VALID = 0      # Known and valid.
    VALID_NEW = 7  # New and valid, now pinned.
    # Issues that are logged but do not reject the certificate.
    NOT_VALID_YET = 3  # not-before date invalid.
    EXPIRED = 4        # not-after date invalid.
    BAD_DOMAIN = 5     # Host name is not in cert's valid domains.


def load_certificate(der: Optional[bytes]):
    """Return an asn1crypto Certificate, or raise SignatureInvalid."""
    if der is None:
        raise SignatureInvalid("Server did not present a certificate.")
    try:
        cert = asn1crypto.x509.Certificate.load(der)
        # Loading is lazy, parse the whole structure now.
        cert.native
    except (ValueError, TypeError) as exc:
        raise SignatureInvalid(f"Server certificate is corrupt: {exc}")
    return cert


def get_cert_issue(cert, hostname: str) -> Optional[CertStatus]:
    """Return a CertStatus describing an issue with this cert, if any."""
    now = datetime.datetime.now(tz=datetime.timezone.utc)
    if now < cert.not_valid_before:
        return CertStatus.NOT_VALID_YET
    if now > cert.not_valid_after:
        return CertStatus.EXPIRED
    if hostname not in cert.valid_domains:
        return CertStatus.BAD_DOMAIN
    return None


def get_fingerprint(der: bytes) -> str:
    """Return the fingerprint of the entire certificate."""
    return hashlib.sha512(der).hexdigest()


def get_pin_expiration(cert, now: float) -> int:
    """Return the timestamp until which this cert should stay pinned."""
    not_after = int(cert.not_valid_after.timestamp())
    return max(not_after, int(now) + MIN_PIN_DURATION)


class TrustPolicy(ABC):
    """Decide whether to accept the certificate presented by a server."""

    @abstractmethod
    def check(self, der: Optional[bytes], hostname: str) -> CertStatus:
        """Return a CertStatus or raise a CertificateError."""
        raise NotImplementedError


class AcceptAll(TrustPolicy):
    """Accept any certificate. Use only for testing."""

    def __init__(self) -> None:
        logging.warning("Certificates will not be checked.")

    def check(self, der: Optional[bytes], hostname: str) -> CertStatus:
        logging.debug(f"Accepting certificate of {hostname} unchecked.")
        return CertStatus.VALID


class PinnedTofu(TrustPolicy):
    """Pin certificates on first use and reject changed identities.

    Attributes:
    - stash: the CertStash holding pinned fingerprints.
    - permanent: whether new pins are saved in the stash file.
    """

    def __init__(self, stash: CertStash, permanent: bool =True) -> None:
        self.stash = stash
        self.permanent = permanent

    def check(self, der: Optional[bytes], hostname: str) -> CertStatus:
        cert = load_certificate(der)
        issue = get_cert_issue(cert, hostname)
        if issue:
            logging.warning(f"Certificate of {hostname}: {issue.name}.")

        fingerprint = get_fingerprint(der)
        now = datetime.datetime.now(tz=datetime.timezone.utc).timestamp()
        expiration = get_pin_expiration(cert, now)
        with self.stash.host_lock(hostname):
            entry = self.stash.get(hostname)
            # Disregard expired fingerprints.
            if entry and entry.timestamp >= now:
                if entry.fingerprint != fingerprint:
                    logging.error(f"Certificate of {hostname} has changed!")
                    raise IdentityChanged(
                        hostname, entry.fingerprint, fingerprint, expiration)
                return CertStatus.VALID
            self.stash.trust(hostname, FINGERPRINT_ALGO, fingerprint,
                             expiration, self.permanent)
        logging.info(f"Pinned new certificate for {hostname}.")
        return CertStatus.VALID_NEW

    def repin(self, error: IdentityChanged, permanent: bool =True):
        """Trust the new identity of the host that raised this error."""
        with self.stash.host_lock(error.hostname):
            self.stash.trust(error.hostname, FINGERPRINT_ALGO,
                             error.fingerprint, error.expiration, permanent)
        logging.info(f"Pinned changed certificate for {error.hostname}.")
